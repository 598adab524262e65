"""Unit tests for provider.py - The orchestrator boundary."""

import asyncio

import pytest

from cloud_client import CloudAPIError
from engine import FailureCause
from identity import Identity, MalformedIdentityError
from immutability import ImmutableFieldError
from keys import encode_private_key_attribute
from provider import Provider, ProviderError, ResourceState, carry_forward
from readiness import Condition, ConditionStatus
from resources.apikey import ApiKeyAdapter
from resources.pulsar_cluster import PulsarClusterAdapter
from validation import ValidationError

VOLUME = {
    "organization": "o",
    "name": "v",
    "bucket": "bucket-a",
    "path": "data",
    "region": "us-east-2",
    "role_arn": "arn:aws:iam::123456789012:role/volume",
}


def status(*pairs):
    return {"conditions": [{"type": t, "status": s} for t, s in pairs]}


@pytest.fixture
def provider(fake_cloud, fake_clock, test_config, registry):
    return Provider(
        fake_cloud,
        config=test_config,
        registry=registry,
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )


def existing_volume(fake_cloud, ready="True"):
    fake_cloud.put(
        "o",
        "volumes",
        {
            "metadata": {"name": "v"},
            "spec": {
                "bucket": "bucket-a",
                "path": "data",
                "type": "aws",
                "aws": {"roleArn": VOLUME["role_arn"], "region": "us-east-2"},
            },
            "status": status(("Ready", ready)),
        },
    )


# ==================== ProviderError Tests ====================


class TestProviderError:
    """Tests for ProviderError."""

    def test_message_carries_conditions(self):
        error = ProviderError(
            "streamnative_volume",
            Identity("o", "v"),
            FailureCause.TIMEOUT,
            conditions=[Condition("Ready", ConditionStatus.FALSE)],
        )
        assert str(error) == (
            "streamnative_volume o/v failed (timeout) [last conditions: Ready=False]"
        )
        assert error.rendered_conditions == "Ready=False"

    def test_message_with_error_and_unknown_identity(self):
        error = ProviderError(
            "streamnative_volume", None, FailureCause.SUBMISSION, CloudAPIError(403, "Forbidden", "no")
        )
        assert str(error) == (
            "streamnative_volume ? failed (submission): HTTP 403 Forbidden: no"
        )


# ==================== Create Tests ====================


@pytest.mark.asyncio
class TestCreate:
    """Tests for Provider.create."""

    async def test_create_converges(self, provider, fake_cloud, fake_clock):
        fake_cloud.progress[("o", "volumes", "v")] = [
            status(("Ready", "False")),
            status(("Ready", "True")),
        ]

        state = await provider.create("streamnative_volume", dict(VOLUME))

        assert isinstance(state, ResourceState)
        assert state.id == "o/v"
        assert state.attributes["ready"] == "True"
        assert state.attributes["bucket"] == "bucket-a"
        assert fake_clock.sleeps == [5]

    async def test_invalid_attributes_never_reach_the_cloud(self, provider, fake_cloud):
        attributes = {k: v for k, v in VOLUME.items() if k != "bucket"}

        with pytest.raises(ValidationError):
            await provider.create("streamnative_volume", attributes)
        assert fake_cloud.calls == []

    async def test_unknown_kind(self, provider):
        with pytest.raises(ValueError):
            await provider.create("streamnative_widget", {})

    async def test_timeout_reports_last_conditions(
        self, provider, fake_cloud, test_config
    ):
        test_config.polling.resource_timeouts = {"streamnative_volume": {"create": 1}}
        fake_cloud.progress[("o", "volumes", "v")] = [
            status(("Ready", "False"))
        ] * 50

        with pytest.raises(ProviderError) as exc_info:
            await provider.create("streamnative_volume", dict(VOLUME))

        error = exc_info.value
        assert error.cause is FailureCause.TIMEOUT
        assert error.identity == Identity("o", "v")
        assert "Ready=False" in str(error)
        # Reads at 0, 5, ..., 60
        assert fake_cloud.count("get") == 13

    async def test_submission_failure(self, provider, fake_cloud):
        fake_cloud.errors["create"] = CloudAPIError(403, "Forbidden", "denied")

        with pytest.raises(ProviderError) as exc_info:
            await provider.create("streamnative_volume", dict(VOLUME))
        assert exc_info.value.cause is FailureCause.SUBMISSION
        assert exc_info.value.error.status == 403

    async def test_prepare_lookup_failure(self, provider, fake_cloud):
        with pytest.raises(ProviderError) as exc_info:
            await provider.create(
                "streamnative_service_account_binding",
                {
                    "organization": "o",
                    "service_account_name": "sa",
                    "cluster_name": "missing",
                },
            )
        assert exc_info.value.cause is FailureCause.SUBMISSION
        assert fake_cloud.count("create") == 0

    async def test_synchronous_kind_skips_polling(self, provider, fake_cloud):
        state = await provider.create(
            "streamnative_secret",
            {"organization": "o", "name": "s", "string_data": {"k": "v"}},
        )

        assert state.id == "o/s"
        assert state.attributes["string_data"] == {"k": "v"}
        assert fake_cloud.count("get") == 0

    async def test_admin_service_account_gets_rolebinding(self, provider, fake_cloud):
        fake_cloud.progress[("o", "serviceaccounts", "sa")] = [
            {
                "conditions": [{"type": "Ready", "status": "True"}],
                "privateKeyData": "key-data",
            }
        ]

        state = await provider.create(
            "streamnative_service_account",
            {"organization": "o", "name": "sa", "admin": True},
        )

        assert state.attributes["private_key_data"] == "key-data"
        binding = fake_cloud.objects[("o", "rolebindings", "sa")]
        assert binding["spec"]["roleRef"]["name"] == "admin"

    async def test_apikey_keeps_private_key(self, provider, fake_cloud):
        fake_cloud.progress[("o", "apikeys", "key-1")] = [
            status(("Issued", "True"), ("Ready", "True"), ("Synced", "True"))
        ]

        state = await provider.create(
            "streamnative_apikey",
            {
                "organization": "o",
                "name": "key-1",
                "instance_name": "instance-1",
                "service_account_name": "sa",
            },
        )

        assert state.attributes["ready"] == "True"
        assert state.attributes["private_key"]
        submitted = fake_cloud.objects[("o", "apikeys", "key-1")]
        assert "expirationTime" in submitted["spec"]
        assert submitted["spec"]["encryptionKey"]["pem"].startswith(
            "-----BEGIN PUBLIC KEY-----"
        )

    async def test_cancelled(self, fake_cloud, fake_clock, test_config, registry):
        cancel_event = asyncio.Event()
        cancel_event.set()
        provider = Provider(
            fake_cloud,
            config=test_config,
            registry=registry,
            cancel_event=cancel_event,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.create("streamnative_volume", dict(VOLUME))
        assert exc_info.value.cause is FailureCause.CANCELLED


# ==================== Read and Import Tests ====================


@pytest.mark.asyncio
class TestRead:
    """Tests for Provider.read and Provider.import_resource."""

    async def test_read_existing(self, provider, fake_cloud):
        existing_volume(fake_cloud)

        state = await provider.read("streamnative_volume", "o/v")

        assert state.id == "o/v"
        assert state.attributes["organization"] == "o"
        assert state.attributes["role_arn"] == VOLUME["role_arn"]

    async def test_read_missing_returns_none(self, provider):
        assert await provider.read("streamnative_volume", "o/gone") is None

    async def test_read_error(self, provider, fake_cloud):
        fake_cloud.errors["get"] = CloudAPIError(500, "InternalError", "boom")

        with pytest.raises(ProviderError) as exc_info:
            await provider.read("streamnative_volume", "o/v")
        assert exc_info.value.cause is FailureCause.READ

    async def test_import(self, provider, fake_cloud):
        existing_volume(fake_cloud)

        state = await provider.import_resource("streamnative_volume", "o/v")

        assert state.attributes["bucket"] == "bucket-a"

    async def test_import_malformed_id(self, provider, fake_cloud):
        with pytest.raises(MalformedIdentityError):
            await provider.import_resource("streamnative_volume", "no-separator")
        assert fake_cloud.calls == []


# ==================== Update Tests ====================


@pytest.mark.asyncio
class TestUpdate:
    """Tests for Provider.update."""

    async def test_update_mutable_field(self, provider, fake_cloud):
        existing_volume(fake_cloud)

        state = await provider.update(
            "streamnative_volume", "o/v", dict(VOLUME), {**VOLUME, "bucket": "bucket-b"}
        )

        assert state.attributes["bucket"] == "bucket-b"
        assert fake_cloud.objects[("o", "volumes", "v")]["spec"]["bucket"] == "bucket-b"

    async def test_organization_change_rejected_before_any_call(
        self, provider, fake_cloud
    ):
        with pytest.raises(ImmutableFieldError) as exc_info:
            await provider.update(
                "streamnative_volume",
                "o/v",
                dict(VOLUME),
                {**VOLUME, "organization": "other"},
            )
        assert exc_info.value.fields == ["organization"]
        assert fake_cloud.calls == []

    async def test_update_missing_object(self, provider):
        with pytest.raises(ProviderError) as exc_info:
            await provider.update(
                "streamnative_volume", "o/v", dict(VOLUME), {**VOLUME, "path": "other"}
            )
        assert "does not exist" in str(exc_info.value)

    async def test_attributes_removed_from_the_plan_are_not_submitted(
        self, provider, fake_cloud
    ):
        fake_cloud.put(
            "o",
            "secrets",
            {
                "metadata": {"name": "s"},
                "instanceName": "instance-1",
                "data": {"a": "YQ=="},
            },
        )
        old = {
            "organization": "o",
            "name": "s",
            "instance_name": "instance-1",
            "data": {"a": "YQ=="},
        }
        new = {"organization": "o", "name": "s", "string_data": {"b": "x"}}

        state = await provider.update("streamnative_secret", "o/s", old, new)

        stored = fake_cloud.objects[("o", "secrets", "s")]
        assert "data" not in stored
        assert "instanceName" not in stored
        assert stored["stringData"] == {"b": "x"}
        assert state.attributes["string_data"] == {"b": "x"}
        assert state.attributes["data"] == {}

    async def test_update_keeps_key_material_and_drops_description(
        self, provider, fake_cloud, rsa_key
    ):
        fake_cloud.put(
            "o",
            "apikeys",
            {
                "metadata": {"name": "key-1"},
                "spec": {
                    "instanceName": "instance-1",
                    "serviceAccountName": "sa",
                    "revoke": False,
                    "description": "first key",
                },
                "status": status(("Issued", "True"), ("Ready", "True"), ("Synced", "True")),
            },
        )
        private_key = encode_private_key_attribute(rsa_key)
        new = {
            "organization": "o",
            "name": "key-1",
            "instance_name": "instance-1",
            "service_account_name": "sa",
        }
        old = {**new, "description": "first key", "private_key": private_key}

        state = await provider.update("streamnative_apikey", "o/key-1", old, new)

        spec = fake_cloud.objects[("o", "apikeys", "key-1")]["spec"]
        assert "description" not in spec
        assert state.attributes["private_key"] == private_key
        assert "description" not in state.attributes

    async def test_gateway_update_waits_for_observed_generation(
        self, provider, fake_cloud
    ):
        def gateway_status(observed_generation):
            return {
                "observedGeneration": observed_generation,
                "conditions": [{"type": "Ready", "status": "True"}],
            }

        fake_cloud.put(
            "o",
            "pulsargateways",
            {
                "metadata": {"name": "gw", "generation": 2},
                "spec": {
                    "access": "private",
                    "poolMemberRef": {"namespace": "streamnative", "name": "aws-use2"},
                    "privateService": {"allowedIds": ["111"]},
                },
            },
        )
        fake_cloud.progress[("o", "pulsargateways", "gw")] = [
            gateway_status(1),
            gateway_status(1),
            gateway_status(2),
        ]
        gateway = {
            "organization": "o",
            "name": "gw",
            "access": "private",
            "poolmember_name": "aws-use2",
            "poolmember_namespace": "streamnative",
        }

        state = await provider.update(
            "streamnative_pulsar_gateway",
            "o/gw",
            {**gateway, "private_service": {"allowed_ids": ["111"]}},
            {**gateway, "private_service": {"allowed_ids": ["111", "222"]}},
        )

        stored = fake_cloud.objects[("o", "pulsargateways", "gw")]
        assert stored["spec"]["privateService"] == {"allowedIds": ["111", "222"]}
        # One read before the update, then two polls
        assert fake_cloud.count("get") == 3
        assert state.attributes["ready"] == "True"

    async def test_gateway_access_change_rejected(self, provider, fake_cloud):
        gateway = {
            "organization": "o",
            "name": "gw",
            "access": "public",
            "poolmember_name": "aws-use2",
            "poolmember_namespace": "streamnative",
        }

        with pytest.raises(ImmutableFieldError) as exc_info:
            await provider.update(
                "streamnative_pulsar_gateway",
                "o/gw",
                gateway,
                {**gateway, "access": "private"},
            )
        assert exc_info.value.fields == ["access"]
        assert fake_cloud.calls == []

    async def test_validate_diff_allows_unknown_generated_name(self, provider):
        old = {
            "organization": "o",
            "name": "c-abc",
            "instance_name": "instance-1",
            "location": "us-east-2",
        }
        new = {k: v for k, v in old.items() if k != "name"}
        provider.validate_diff("streamnative_pulsar_cluster", old, new)


# ==================== Delete Tests ====================


@pytest.mark.asyncio
class TestDelete:
    """Tests for Provider.delete and Provider.check_destroyed."""

    async def test_delete_waits_until_gone(self, provider, fake_cloud):
        existing_volume(fake_cloud)
        fake_cloud.linger[("o", "volumes", "v")] = 1

        await provider.delete("streamnative_volume", "o/v")

        assert ("o", "volumes", "v") not in fake_cloud.objects
        await provider.check_destroyed("streamnative_volume", "o/v")

    async def test_check_destroyed_raises_when_present(self, provider, fake_cloud):
        existing_volume(fake_cloud)

        with pytest.raises(ProviderError) as exc_info:
            await provider.check_destroyed("streamnative_volume", "o/v")
        assert "still exists" in str(exc_info.value)

    async def test_delete_already_gone(self, provider):
        await provider.delete("streamnative_volume", "o/gone")


# ==================== Lookup Tests ====================


@pytest.mark.asyncio
class TestLookup:
    """Tests for Provider.lookup and Provider.list_names."""

    async def test_lookup_managed_kind(self, provider, fake_cloud):
        existing_volume(fake_cloud)

        state = await provider.lookup("streamnative_volume", "o", "v")

        assert state.id == "o/v"
        assert state.attributes["bucket"] == "bucket-a"

    async def test_lookup_pool_member(self, provider, fake_cloud):
        fake_cloud.put(
            "streamnative",
            "poolmembers",
            {
                "metadata": {"name": "gcp-use1"},
                "spec": {
                    "type": "gcloud",
                    "poolName": "shared-gcp",
                    "gcloud": {"location": "us-east1"},
                },
            },
        )

        state = await provider.lookup("streamnative_pool_member", "streamnative", "gcp-use1")

        assert state.id == "streamnative/gcp-use1"
        assert state.attributes["pool_name"] == "shared-gcp"
        assert state.attributes["location"] == "us-east1"

    async def test_lookup_missing(self, provider):
        with pytest.raises(ProviderError) as exc_info:
            await provider.lookup("streamnative_pool", "o", "gone")
        assert "not found" in str(exc_info.value)

    async def test_read_only_kind_cannot_be_created(self, provider, fake_cloud):
        with pytest.raises(ValueError) as exc_info:
            await provider.create("streamnative_pool", {"organization": "o", "name": "p"})
        assert "read-only" in str(exc_info.value)
        assert fake_cloud.calls == []

    async def test_read_only_kind_cannot_be_deleted(self, provider, fake_cloud):
        with pytest.raises(ValueError):
            await provider.delete("streamnative_pool_member", "o/pm")
        assert fake_cloud.calls == []

    async def test_list_names(self, provider, fake_cloud):
        for name in ("c-1", "c-2"):
            fake_cloud.put("o", "pulsarclusters", {"metadata": {"name": name}})
        fake_cloud.put("other", "pulsarclusters", {"metadata": {"name": "c-3"}})

        state = await provider.list_names("o", "PulsarClusters")

        assert state.id == "o/pulsarclusters"
        assert state.attributes["names"] == ["c-1", "c-2"]

    async def test_list_names_rejects_unlisted_collection(self, provider, fake_cloud):
        with pytest.raises(ValueError):
            await provider.list_names("o", "secrets")
        assert fake_cloud.calls == []


# ==================== Carry Forward Tests ====================


class TestCarryForward:
    """Tests for carry_forward function."""

    def test_plan_wins_and_omissions_are_dropped(self):
        old = {"organization": "o", "name": "k", "description": "old", "revoke": True}
        new = {"organization": "o", "name": "k", "revoke": False}

        assert carry_forward(ApiKeyAdapter(), old, new) == new

    def test_computed_value_is_kept(self):
        old = {"organization": "o", "name": "k", "private_key": "pem"}
        new = {"organization": "o", "name": "k"}

        assert carry_forward(ApiKeyAdapter(), old, new)["private_key"] == "pem"

    def test_generated_name_is_kept(self):
        old = {"organization": "o", "name": "c-abc", "display_name": "old"}
        new = {"organization": "o"}

        assert carry_forward(PulsarClusterAdapter(), old, new) == {
            "organization": "o",
            "name": "c-abc",
        }
