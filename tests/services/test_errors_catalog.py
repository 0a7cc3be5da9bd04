import pytest

from hostprov.errors_catalog import actionable_error


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("missing_certificate", path="/etc/letsencrypt/live/host/fullchain.pem")

    assert "Cannot find certificate file /etc/letsencrypt/live/host/fullchain.pem." in message
    assert "Suggested action:" in message
    assert "letsencrypt certonly" in message


def test_actionable_error_rejects_unknown_code():
    with pytest.raises(KeyError, match="Unknown error catalog key"):
        actionable_error("no_such_error")
