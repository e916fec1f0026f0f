"""
Security tests for AuthGate.

Tests specifically for security-related scenarios:
- Nothing secret leaks through payloads, reprs, logs or the audit trail
- Timing equalisation for unknown accounts
- Fail-closed behaviour on corrupt state
"""

import logging

import pytest

from authgate.errors import AuthenticationError, DecryptionError, ValidationError

from .conftest import EMAIL, PASSWORD


class TestNoSecretLeaks:
    """Credentials never leave the core."""

    def test_payloads_hold_no_credentials(self, enrolled):
        service, token, seed = enrolled
        user = service.users.find_by_email(EMAIL)

        payloads = [
            service.login.profile(token),
            service.login.login(EMAIL, PASSWORD).as_payload(),
        ]
        for payload in payloads:
            text = repr(payload)
            assert user.password_hash not in text
            assert user.totp_secret_encrypted not in text
            assert seed not in text
            assert PASSWORD not in text

    def test_result_and_ticket_reprs(self, service):
        result = service.login.register(EMAIL, PASSWORD)
        assert result.token not in repr(result)

        ticket = service.enrollment.begin_setup(result.token)
        assert ticket.secret not in repr(ticket)

    def test_logs_hold_no_credentials(self, service, caplog):
        caplog.set_level(logging.DEBUG, logger="authgate")

        result = service.login.register(EMAIL, PASSWORD)
        ticket = service.enrollment.begin_setup(result.token)
        code = service.totp.code_at(ticket.secret)
        service.enrollment.confirm_setup(result.token, code)
        with pytest.raises(AuthenticationError):
            service.login.login(EMAIL, "wrong-password")

        text = caplog.text
        assert caplog.records
        for secret in (PASSWORD, "wrong-password", ticket.secret, result.token, EMAIL):
            assert secret not in text

    def test_audit_trail_holds_hashes_only(self, enrolled):
        service, _, _ = enrolled
        user_id = service.users.find_by_email(EMAIL).id
        for event in service.audit.events():
            serialised = event.to_json()
            assert user_id not in serialised
            assert EMAIL not in serialised


class TestTimingEqualisation:
    """Unknown accounts cost a hash verification too."""

    def test_unknown_email_burns_a_hash(self, service, monkeypatch):
        calls = []
        original = service.hasher.burn

        def tracking(password):
            calls.append(password)
            original(password)

        monkeypatch.setattr(service.hasher, "burn", tracking)
        with pytest.raises(AuthenticationError):
            service.login.login("nobody@x.com", PASSWORD)
        assert calls == [PASSWORD]


class TestFailClosed:
    """Ambiguous state denies access."""

    def test_flag_without_secret_denies_access(self, service):
        """totp_enabled with a missing secret must not skip the second factor."""
        result = service.login.register(EMAIL, PASSWORD)
        service.users.update(result.identity.id, totp_enabled=True)

        partial = service.login.login(EMAIL, PASSWORD)
        assert partial.requires_2fa is True
        with pytest.raises(ValidationError):
            service.login.verify_two_factor(partial.token, "123456")
        with pytest.raises(AuthenticationError):
            service.login.profile(partial.token)

    def test_secret_ignored_while_disabled(self, service):
        result = service.login.register(EMAIL, PASSWORD)
        service.users.update(result.identity.id, totp_secret_encrypted="garbage")
        assert service.login.login(EMAIL, PASSWORD).requires_2fa is False

    def test_corrupt_pending_secret(self, service):
        result = service.login.register(EMAIL, PASSWORD)
        service.enrollment.begin_setup(result.token)
        service.sessions.get(result.token).pending_enrollment_secret = "k1$00:00"

        with pytest.raises(DecryptionError):
            service.enrollment.confirm_setup(result.token, "123456")
        assert service.users.find_by_email(EMAIL).totp_enabled is False

    def test_wrong_totp_codes_rejected(self, enrolled):
        service, _, seed = enrolled
        valid = {service.totp.code_at(seed, None)}
        for wrong in ["000000", "111111", "999999", "123456", "654321"]:
            if wrong not in valid and not service.totp.verify(seed, wrong):
                with pytest.raises(AuthenticationError):
                    service.login.login_with_two_factor(EMAIL, PASSWORD, wrong)
