"""End-to-end API tests."""

from httpx import AsyncClient

from oos_engine.models.regulatory_source import RegulatorySource
from oos_engine.models.rule_version import RuleVersion
from tests.conftest import LINING_UNDER_3MM, ORG

API = "/api/v1"


async def create_draft(client: AsyncClient, headers: dict[str, str], source_id: str) -> dict:
    response = await client.post(
        f"{API}/rule-versions",
        json={
            "name": "CVSA_OOSC_2025",
            "effective_start": "2025-04-01T00:00:00Z",
            "source_ids": [source_id],
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


async def add_lining_rule(
    client: AsyncClient,
    headers: dict[str, str],
    version_id: str,
    condition_tree: dict = LINING_UNDER_3MM,
    is_triage_only: bool = False,
) -> dict:
    response = await client.post(
        f"{API}/rule-versions/{version_id}/rules",
        json={
            "category": "VEHICLE",
            "component_code": "013",
            "title": "Brake lining below minimum",
            "rule_code": "R1",
            "condition_tree": condition_tree,
            "outcome": "OOS_VEHICLE",
            "is_triage_only": is_triage_only,
            "explanation_template": "Brake lining {lining_mm} mm is below 3 mm",
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestRuleVersionApi:
    """Tests for the rule version endpoints."""

    async def test_build_and_activate_version(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
    ) -> None:
        """DRAFT -> rule -> validation -> ACTIVE over HTTP."""
        version = await create_draft(client, actor_headers, cvsa_source.id)
        assert version["status"] == "DRAFT"
        assert version["org_id"] == ORG
        assert version["source_ids"] == [cvsa_source.id]

        await add_lining_rule(client, actor_headers, version["id"])

        validation = await client.get(
            f"{API}/rule-versions/{version['id']}/validation", headers=actor_headers
        )
        assert validation.json() == {"version_id": version["id"], "valid": True, "errors": []}

        response = await client.post(
            f"{API}/rule-versions/{version['id']}/activate", headers=actor_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ACTIVE"
        assert len(data["content_hash"]) == 64
        assert len(data["rules"]) == 1

        listed = await client.get(
            f"{API}/rule-versions", params={"status": "ACTIVE"}, headers=actor_headers
        )
        assert [v["id"] for v in listed.json()] == [version["id"]]

    async def test_malformed_tree_is_422(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
    ) -> None:
        """Activation lists every definition problem."""
        version = await create_draft(client, actor_headers, cvsa_source.id)
        await add_lining_rule(
            client, actor_headers, version["id"], condition_tree={"type": "or", "children": []}
        )

        response = await client.post(
            f"{API}/rule-versions/{version['id']}/activate", headers=actor_headers
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "RuleDefinitionError"
        assert len(body["errors"]) == 1

    async def test_stale_revision_is_409(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
    ) -> None:
        """A caller holding an old revision gets a conflict."""
        version = await create_draft(client, actor_headers, cvsa_source.id)
        await add_lining_rule(client, actor_headers, version["id"])

        response = await client.post(
            f"{API}/rule-versions/{version['id']}/activate",
            json={"expected_revision": version["revision"]},
            headers=actor_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "StaleVersionError"

    async def test_frozen_rules_are_409(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        active_version: RuleVersion,
    ) -> None:
        """Rules of an ACTIVE version cannot be edited."""
        response = await client.patch(
            f"{API}/rules/{active_version.rules[0].id}",
            json={"title": "Changed"},
            headers=actor_headers,
        )

        assert response.status_code == 409

    async def test_null_required_rule_field_is_400(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
    ) -> None:
        """Required rule fields cannot be cleared with null."""
        version = await create_draft(client, actor_headers, cvsa_source.id)
        rule = await add_lining_rule(client, actor_headers, version["id"])

        for field in ("title", "is_triage_only", "condition_tree"):
            response = await client.patch(
                f"{API}/rules/{rule['id']}", json={field: None}, headers=actor_headers
            )
            assert response.status_code == 400
            assert field in response.json()["detail"]

        response = await client.patch(
            f"{API}/rules/{rule['id']}",
            json={"citation_text": None, "title": "Brake lining worn"},
            headers=actor_headers,
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Brake lining worn"
        assert response.json()["citation_text"] is None

    async def test_disable_version(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        active_version: RuleVersion,
    ) -> None:
        """Disabling keeps the version ACTIVE."""
        response = await client.put(
            f"{API}/rule-versions/{active_version.id}/enabled",
            json={"enabled": False},
            headers=actor_headers,
        )

        assert response.status_code == 200
        assert response.json()["enabled"] is False
        assert response.json()["status"] == "ACTIVE"

    async def test_missing_actor_is_401(self, client: AsyncClient) -> None:
        """Mutations need the host-resolved actor."""
        response = await client.post(
            f"{API}/rule-versions",
            json={"name": "X", "effective_start": "2025-04-01T00:00:00Z"},
            headers={"X-Org-Id": ORG},
        )

        assert response.status_code == 401

    async def test_other_org_version_is_404(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        active_version: RuleVersion,
    ) -> None:
        """Versions of another org are not visible."""
        response = await client.get(
            f"{API}/rule-versions/{active_version.id}",
            headers={"X-Actor-Id": "someone", "X-Org-Id": "org-other"},
        )

        assert response.status_code == 404

    async def test_unknown_version_is_404(
        self, client: AsyncClient, actor_headers: dict[str, str]
    ) -> None:
        """Unknown ids are reported as not found."""
        response = await client.get(f"{API}/rule-versions/nope", headers=actor_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "RuleVersionNotFoundError"


class TestInspectionApi:
    """Tests for inspections, findings and triage over HTTP."""

    async def start_inspection(self, client: AsyncClient, headers: dict[str, str]) -> dict:
        response = await client.post(
            f"{API}/inspections",
            json={
                "asset_ref": "unit-4411",
                "inspection_type": "LEVEL_1",
                "inspected_at": "2025-06-15T09:30:00Z",
            },
            headers=headers,
        )
        assert response.status_code == 201
        return response.json()

    async def test_oos_finding_flow(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        active_version: RuleVersion,
    ) -> None:
        """Record an OOS finding, close and replay."""
        inspection = await self.start_inspection(client, actor_headers)
        assert inspection["rule_version_id"] == active_version.id
        assert inspection["status"] == "PENDING"

        response = await client.post(
            f"{API}/inspections/{inspection['id']}/findings",
            json={
                "finding_type": "VEHICLE",
                "component_code": "013",
                "observed_data": {"lining_mm": 2},
            },
            headers=actor_headers,
        )
        assert response.status_code == 201
        finding = response.json()
        assert finding["outcome"] == "OOS_VEHICLE"
        assert finding["explanations"] == ["Triggered by: lining_mm lt 3"]

        closed = await client.post(
            f"{API}/inspections/{inspection['id']}/close", headers=actor_headers
        )
        assert closed.json()["status"] == "OOS"

        replay = await client.get(
            f"{API}/inspections/{inspection['id']}/replay", headers=actor_headers
        )
        assert replay.status_code == 200
        assert replay.json()["consistent"] is True

    async def test_triage_flow(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        triage_version: RuleVersion,
    ) -> None:
        """A triage finding is listed, then confirmed by a reviewer."""
        inspection = await self.start_inspection(client, actor_headers)
        await client.post(
            f"{API}/inspections/{inspection['id']}/findings",
            json={"finding_type": "VEHICLE", "component_code": "013", "observed_data": {"lining_mm": 2}},
            headers=actor_headers,
        )

        open_triage = await client.get(f"{API}/triage/findings", headers=actor_headers)
        assert len(open_triage.json()) == 1
        finding_id = open_triage.json()[0]["id"]

        blocked = await client.post(
            f"{API}/inspections/{inspection['id']}/close", headers=actor_headers
        )
        assert blocked.status_code == 409

        resolved = await client.post(
            f"{API}/findings/{finding_id}/resolve-triage",
            json={"resolved_outcome": "OOS_VEHICLE", "reason": "Confirmed on re-measure"},
            headers=actor_headers,
        )
        assert resolved.status_code == 200
        assert resolved.json()["triage_status"] == "RESOLVED"

        current = await client.get(f"{API}/inspections/{inspection['id']}", headers=actor_headers)
        assert current.json()["status"] == "OOS"

        change_log = await client.get(
            f"{API}/change-log",
            params={"entity_id": finding_id},
            headers=actor_headers,
        )
        assert [entry["action"] for entry in change_log.json()] == ["TRIAGE_CONFIRMED"]

    async def test_no_active_version_is_409(
        self, client: AsyncClient, actor_headers: dict[str, str]
    ) -> None:
        """Inspections need an applicable rule version."""
        response = await client.post(
            f"{API}/inspections",
            json={"asset_ref": "unit-4411", "inspection_type": "LEVEL_1"},
            headers=actor_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "NoActiveRuleVersionError"


class TestSourceApi:
    """Tests for the regulatory source endpoints."""

    async def test_referenced_source_delete_is_409(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
        active_version: RuleVersion,
    ) -> None:
        """A cited source cannot be deleted."""
        response = await client.delete(f"{API}/sources/{cvsa_source.id}", headers=actor_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "SourceInUseError"

    async def test_correction_without_reason_is_400(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
        active_version: RuleVersion,
    ) -> None:
        """Editing a cited source needs a correction reason."""
        response = await client.patch(
            f"{API}/sources/{cvsa_source.id}",
            json={"notes": "updated"},
            headers=actor_headers,
        )

        assert response.status_code == 400

    async def test_null_source_title_is_400(
        self,
        client: AsyncClient,
        actor_headers: dict[str, str],
        cvsa_source: RegulatorySource,
    ) -> None:
        """A source keeps its title and type."""
        response = await client.patch(
            f"{API}/sources/{cvsa_source.id}",
            json={"title": None},
            headers=actor_headers,
        )

        assert response.status_code == 400
        assert "title" in response.json()["detail"]

        response = await client.get(f"{API}/sources", headers=actor_headers)
        assert [source["title"] for source in response.json()] == [cvsa_source.title]
