"""Tests for permanent client deployments."""

from datetime import date

import pytest

from custody_kernel.domain.lifecycle import AssetStatus
from custody_kernel.exceptions import (
    AssetNotFoundError,
    AssetUnavailableError,
    DeploymentNotFoundError,
    NotAuthorizedError,
    ValidationError,
)

DEPLOY_DATE = date(2024, 1, 2)


@pytest.fixture
def deploy(orchestrator, seed):
    def _deploy(asset_ids, actor=None, client_name="Acme Mining"):
        return orchestrator.create_deployment(
            (actor or seed.admin).id,
            client_name,
            "Pit 4, Kalgoorlie",
            "Jo Site",
            "+61-400-000-000",
            "Site Manager",
            asset_ids,
            DEPLOY_DATE,
            notes="Permanent install",
        )

    return _deploy


class TestCreateDeployment:

    def test_deploys_assets_permanently(self, orchestrator, seed, deploy):
        deployment = deploy(seed.asset_ids(3, 4))

        assert deployment.item_ids == tuple(seed.asset_ids(3, 4))
        assert deployment.deployed_by == seed.admin.id
        assert deployment.deployment_date == DEPLOY_DATE
        for asset_id in seed.asset_ids(3, 4):
            assert orchestrator.get_asset(asset_id).status is AssetStatus.DEPLOYED
        assert orchestrator.get_deployment(deployment.id) == deployment

    def test_deployed_asset_cannot_be_requested(self, orchestrator, seed, deploy, submit):
        deploy(seed.asset_ids(3))
        with pytest.raises(AssetUnavailableError):
            submit(asset_ids=seed.asset_ids(3))

    def test_deployed_asset_cannot_be_deployed_again(self, seed, deploy):
        deploy(seed.asset_ids(3))
        with pytest.raises(AssetUnavailableError):
            deploy(seed.asset_ids(3), client_name="Other Client")

    def test_asset_on_open_request_cannot_be_deployed(self, orchestrator, seed, deploy, submit):
        submit(asset_ids=seed.asset_ids(0))
        with pytest.raises(AssetUnavailableError):
            deploy(seed.asset_ids(0, 3))
        # Nothing was deployed, including the free asset.
        assert orchestrator.get_asset(seed.assets[3].id).status is AssetStatus.AVAILABLE
        assert orchestrator.list_deployments() == []

    def test_in_use_asset_cannot_be_deployed(self, seed, deploy, verified):
        verified(asset_ids=seed.asset_ids(1))
        with pytest.raises(AssetUnavailableError):
            deploy(seed.asset_ids(1))

    def test_only_admins_deploy(self, seed, deploy):
        with pytest.raises(NotAuthorizedError):
            deploy(seed.asset_ids(3), actor=seed.guard)

    def test_client_name_required(self, seed, deploy):
        with pytest.raises(ValidationError):
            deploy(seed.asset_ids(3), client_name=" ")

    def test_unknown_asset(self, seed, deploy):
        with pytest.raises(AssetNotFoundError):
            deploy(["a-404"])

    def test_actor_is_notified(self, seed, deploy, sink):
        deploy(seed.asset_ids(3, 4))
        assert "Deployed 2 asset(s) to Acme Mining." in sink.messages_for(seed.admin.id)

    def test_deployable_assets_by_serial(self, orchestrator, seed, submit):
        submit(asset_ids=seed.asset_ids(0))
        found = orchestrator.deployable_assets(["SN-LAP-001", "SN-NET-001", "SN-NOPE"])
        assert [a.serial_number for a in found] == ["SN-NET-001"]


class TestReadDeployments:

    def test_unknown_deployment(self, orchestrator):
        with pytest.raises(DeploymentNotFoundError):
            orchestrator.get_deployment("dep-404")

    def test_list_deployments(self, orchestrator, seed, deploy):
        first = deploy(seed.asset_ids(3))
        second = deploy(seed.asset_ids(4), client_name="Beta Ports")
        assert {d.id for d in orchestrator.list_deployments()} == {first.id, second.id}
