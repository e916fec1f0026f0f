#!/usr/bin/env python
"""
AuthGate live demo

Walks through the full two-factor lifecycle:
- Registration with Argon2id password hashing
- TOTP enrollment (seed, provisioning URI, QR code)
- Logout, then login that stops at the second factor
- Stateless login with password + TOTP code
- Disabling 2FA with password re-verification
- The audit trail recorded along the way

Run with --no-pause to skip the presenter pauses.
"""

import os
import sys

from authgate import (
    AuthConfig,
    AuthService,
    AuthenticationError,
    ValidationError,
    configure_logging,
)
from authgate.auth.session import SessionState
from authgate.qr import provisioning_qr_ascii


PAUSE = "--no-pause" not in sys.argv


def print_header(title):
    """Print a formatted section header"""
    print("\n" + "═" * 70)
    print(f"  {title}")
    print("═" * 70)


def print_step(step_num, description):
    print(f"\n  [{step_num}] {description}")


def pause(message="Press ENTER to continue..."):
    if PAUSE:
        print(f"\n  [PAUSE] {message}")
        input()


def main():
    os.environ.setdefault("AUTHGATE_ENCRYPTION_KEY", "demo-only-passphrase")
    config = AuthConfig.load()
    configure_logging(config.logging)
    service = AuthService.from_config(config)

    print("\n" * 2)
    print("╔" + "═" * 68 + "╗")
    print("║" + "AUTHGATE - PASSWORD + TOTP AUTHENTICATION".center(68) + "║")
    print("╚" + "═" * 68 + "╝")

    pause("Press ENTER to begin the demonstration...")

    print_header("PART 1: REGISTRATION")

    email, password = "u@x.com", "pw123456"

    print_step("1.1", "Rejecting a short password")
    try:
        service.login.register(email, "short")
    except ValidationError as exc:
        print(f"  [X] {type(exc).__name__}: {exc}")

    print_step("1.2", f"Registering {email}")
    registered = service.login.register(email, password)
    token = registered.token
    print(f"  [OK] {registered.as_payload()}")
    print(f"  Session state: {service.login.state_of(token).value}")

    stored = service.users.find_by_email(email)
    print(f"\n  Stored Argon2id hash: {stored.password_hash[:60]}...")

    pause()

    print_header("PART 2: TOTP ENROLLMENT")

    print_step("2.1", "Generating a seed")
    ticket = service.enrollment.begin_setup(token)
    print(f"  Base32 seed (shown once): {ticket.secret}")
    print(f"  Provisioning URI: {ticket.provisioning_uri[:60]}...")
    print(provisioning_qr_ascii(ticket.provisioning_uri))

    session = service.sessions.get(token)
    print(f"  Pending ciphertext in session: {session.pending_enrollment_secret[:40]}...")

    pause()

    print_step("2.2", "Confirming with the current code")
    code = service.totp.code_at(ticket.secret)
    print(f"  Authenticator shows: {code} ({service.totp.remaining_seconds()}s left)")
    identity = service.enrollment.confirm_setup(token, code)
    print(f"  [OK] 2FA enabled: {identity.totp_enabled}")

    pause()

    print_header("PART 3: LOGIN WITH TWO FACTORS")

    print_step("3.1", "Logging out")
    service.login.logout(token)
    print(f"  Session state: {service.login.state_of(token).value}")

    print_step("3.2", "Password only")
    partial = service.login.login(email, password)
    print(f"  [OK] {partial.as_payload()}")
    print(f"  Session state: {service.login.state_of(partial.token).value}")

    try:
        service.login.profile(partial.token)
    except AuthenticationError as exc:
        print(f"  [X] Profile before second factor: {exc}")

    pause()

    print_step("3.3", "Password + TOTP code")
    full = service.login.login_with_two_factor(
        email, password, service.totp.code_at(ticket.secret), token=partial.token)
    assert service.login.state_of(full.token) is SessionState.VERIFIED
    print(f"  [OK] Session state: {service.login.state_of(full.token).value}")
    print(f"  Profile: {service.login.profile(full.token)}")

    pause()

    print_header("PART 4: DISABLING 2FA")

    try:
        service.enrollment.disable(full.token, "wrong-password")
    except AuthenticationError as exc:
        print(f"  [X] Wrong password: {exc}")

    identity = service.enrollment.disable(full.token, password)
    print(f"  [OK] 2FA enabled: {identity.totp_enabled}")

    print_header("AUDIT TRAIL")
    for event in service.audit.events():
        print(f"  {event}")

    print("\n\n" + "═" * 70)
    print("  DEMONSTRATION COMPLETE!")
    print("═" * 70)


if __name__ == "__main__":
    main()
