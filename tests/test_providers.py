import boto3
import pytest
from botocore.stub import Stubber

from lightsailvm.errors import ErrorKind, ProviderError
from lightsailvm.providers import BotoLightsail, classify_error_code, make_lightsail_client
from lightsailvm.types import Credentials


@pytest.fixture
def client():
    return boto3.client(
        "lightsail",
        region_name="ap-northeast-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubbed(client):
    with Stubber(client) as stubber:
        yield BotoLightsail(client), stubber
        stubber.assert_no_pending_responses()


@pytest.mark.parametrize(
    "code, kind",
    [
        ("NotFoundException", ErrorKind.NOT_FOUND),
        ("InvalidInputException", ErrorKind.INVALID_INPUT),
        ("AccessDeniedException", ErrorKind.ACCESS_DENIED),
        ("UnauthenticatedException", ErrorKind.ACCESS_DENIED),
        ("ThrottlingException", ErrorKind.THROTTLED),
        ("ServiceException", ErrorKind.SERVICE),
        ("OperationFailureException", ErrorKind.SERVICE),
        ("SomethingNew", ErrorKind.OTHER),
    ],
)
def test_classify_error_code(code, kind):
    assert classify_error_code(code) is kind


def test_not_found_is_translated(stubbed):
    api, stubber = stubbed
    stubber.add_client_error(
        "get_key_pair",
        service_error_code="NotFoundException",
        service_message="The KeyPair does not exist",
        http_status_code=400,
    )
    with pytest.raises(ProviderError) as exc_info:
        api.get_key_pair("web")
    error = exc_info.value
    assert error.not_found
    assert error.operation == "get_key_pair"
    assert str(error) == "get_key_pair: NotFoundException: The KeyPair does not exist"


def test_name_conflict_is_invalid_input(stubbed):
    api, stubber = stubbed
    stubber.add_client_error(
        "create_instances",
        service_error_code="InvalidInputException",
        service_message="Some names are already in use: web",
        http_status_code=400,
    )
    with pytest.raises(ProviderError) as exc_info:
        api.create_instance("web", "ap-northeast-1a", "ubuntu_18_04", "small_2_0", "web")
    assert exc_info.value.kind is ErrorKind.INVALID_INPUT


def test_get_zones_flattens_regions(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "get_regions",
        {
            "regions": [
                {
                    "name": "ap-northeast-1",
                    "availabilityZones": [
                        {"zoneName": "ap-northeast-1a", "state": "available"},
                        {"zoneName": "ap-northeast-1d", "state": "unavailable"},
                    ],
                },
                {
                    "name": "us-east-1",
                    "availabilityZones": [{"zoneName": "us-east-1a", "state": "available"}],
                },
            ]
        },
        {"includeAvailabilityZones": True},
    )
    assert api.get_zones() == [
        {"name": "ap-northeast-1a", "state": "available"},
        {"name": "ap-northeast-1d", "state": "unavailable"},
        {"name": "us-east-1a", "state": "available"},
    ]


def test_get_bundles_follows_pages(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "get_bundles",
        {"bundles": [{"bundleId": "nano_2_0", "isActive": True}], "nextPageToken": "t1"},
        {"includeInactive": False},
    )
    stubber.add_response(
        "get_bundles",
        {"bundles": [{"bundleId": "small_2_0", "isActive": True}]},
        {"includeInactive": False, "pageToken": "t1"},
    )
    assert api.get_bundles() == [
        {"id": "nano_2_0", "active": True},
        {"id": "small_2_0", "active": True},
    ]


def test_get_blueprints(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "get_blueprints",
        {"blueprints": [{"blueprintId": "ubuntu_18_04", "isActive": True}]},
        {"includeInactive": False},
    )
    assert api.get_blueprints() == [{"id": "ubuntu_18_04", "active": True}]


def test_create_instance_parameters(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "create_instances",
        {"operations": []},
        {
            "instanceNames": ["web"],
            "availabilityZone": "ap-northeast-1a",
            "blueprintId": "ubuntu_18_04",
            "bundleId": "small_2_0",
            "keyPairName": "web-key",
        },
    )
    api.create_instance("web", "ap-northeast-1a", "ubuntu_18_04", "small_2_0", "web-key")


def test_import_key_pair_sends_public_key_line(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "import_key_pair",
        {"operation": {"id": "op-1"}},
        {"keyPairName": "web", "publicKeyBase64": "ssh-rsa AAAAB3Nza web"},
    )
    api.import_key_pair("web", "ssh-rsa AAAAB3Nza web\n")


def test_get_instance_maps_fields(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "get_instance",
        {
            "instance": {
                "name": "web",
                "publicIpAddress": "203.0.113.10",
                "username": "ubuntu",
                "state": {"code": 16, "name": "running"},
            }
        },
        {"instanceName": "web"},
    )
    assert api.get_instance("web") == {
        "name": "web",
        "ip": "203.0.113.10",
        "username": "ubuntu",
        "state_code": 16,
        "state_name": "running",
    }


def test_open_ports(stubbed):
    api, stubber = stubbed
    stubber.add_response(
        "open_instance_public_ports",
        {"operation": {"id": "op-2"}},
        {
            "instanceName": "web",
            "portInfo": {"fromPort": 2376, "toPort": 2376, "protocol": "tcp"},
        },
    )
    api.open_ports("web", 2376, 2376)


def test_stop_instance_force(stubbed):
    api, stubber = stubbed
    stubber.add_response("stop_instance", {"operations": []}, {"instanceName": "web", "force": True})
    api.stop_instance("web", force=True)


def test_client_retry_policy():
    session, client = make_lightsail_client(
        "ap-northeast-1", Credentials(access_key="testing", secret_key="testing")
    )
    assert client.meta.region_name == "ap-northeast-1"
    assert client.meta.config.retries["total_max_attempts"] == 3
    assert client.meta.config.retries["mode"] == "standard"
    assert BotoLightsail(client, session).has_credentials()


def test_credentials_session_kwargs():
    assert Credentials().session_kwargs() == {}
    assert Credentials(profile="work").session_kwargs() == {"profile_name": "work"}
    assert Credentials(access_key="a", secret_key="b", session_token="c", profile="work").session_kwargs() == {
        "aws_access_key_id": "a",
        "aws_secret_access_key": "b",
        "aws_session_token": "c",
    }
