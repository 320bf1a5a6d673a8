"""
Tests for the SES client wrapper.
"""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from storefront.services.notifications.aws_clients import SESClient, SESClientError


def client_error(code: str, message: str = "error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "SendEmail")


@pytest.fixture
def boto_client() -> Mock:
    client = Mock()
    client.send_email.return_value = {"MessageId": "msg-123"}
    return client


@pytest.fixture
def sleep() -> Mock:
    return Mock()


@pytest.fixture
def ses(boto_client, sleep) -> SESClient:
    return SESClient(
        region_name="eu-west-1",
        sender="orders@example.com",
        client=boto_client,
        sleep=sleep,
    )


class TestSendEmail:
    def test_success(self, ses, boto_client) -> None:
        result = ses.send_email(["a@example.com"], "Hello", "text", "<p>html</p>")

        assert result == {
            "message_id": "msg-123",
            "status": "sent",
            "to_addresses": ["a@example.com"],
        }
        params = boto_client.send_email.call_args.kwargs
        assert params["Source"] == "orders@example.com"
        assert params["Destination"] == {"ToAddresses": ["a@example.com"]}
        assert params["Message"]["Body"]["Html"]["Data"] == "<p>html</p>"

    def test_text_only(self, ses, boto_client) -> None:
        ses.send_email(["a@example.com"], "Hello", "text")

        assert "Html" not in boto_client.send_email.call_args.kwargs["Message"]["Body"]

    def test_requires_recipient(self, ses, boto_client) -> None:
        with pytest.raises(SESClientError):
            ses.send_email([], "Hello", "text")

        boto_client.send_email.assert_not_called()

    def test_throttling_retried(self, ses, boto_client, sleep) -> None:
        boto_client.send_email.side_effect = [
            client_error("Throttling"),
            {"MessageId": "msg-456"},
        ]

        result = ses.send_email(["a@example.com"], "Hello", "text")

        assert result["message_id"] == "msg-456"
        sleep.assert_called_once_with(1.0)

    def test_permanent_error_not_retried(self, ses, boto_client, sleep) -> None:
        boto_client.send_email.side_effect = client_error("MessageRejected", "Email address is not verified")

        with pytest.raises(SESClientError) as exc_info:
            ses.send_email(["a@example.com"], "Hello", "text")

        assert exc_info.value.context["error_code"] == "MessageRejected"
        assert boto_client.send_email.call_count == 1
        sleep.assert_not_called()

    def test_connection_errors_exhaust_retries(self, ses, boto_client, sleep) -> None:
        boto_client.send_email.side_effect = EndpointConnectionError(
            endpoint_url="https://email.eu-west-1.amazonaws.com"
        )

        with pytest.raises(SESClientError, match="after 3 attempts"):
            ses.send_email(["a@example.com"], "Hello", "text")

        assert boto_client.send_email.call_count == 3
        assert [call.args[0] for call in sleep.call_args_list] == [1.0, 2.0]
