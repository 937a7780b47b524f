# Tests for PKCE S256 helpers.

import pytest

from oauth import pkce

# RFC 7636 Appendix B
RFC_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
RFC_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_compute_challenge_matches_rfc_vector():
    assert pkce.compute_challenge(RFC_VERIFIER) == RFC_CHALLENGE


def test_verify_challenge():
    assert pkce.verify_challenge(RFC_VERIFIER, RFC_CHALLENGE)
    assert not pkce.verify_challenge(RFC_VERIFIER, RFC_CHALLENGE[:-1] + "A")
    assert not pkce.verify_challenge(RFC_VERIFIER[:-1] + "x", RFC_CHALLENGE)


@pytest.mark.parametrize(
    "verifier, valid",
    [
        ("a" * 42, False),
        ("a" * 43, True),
        ("a" * 128, True),
        ("a" * 129, False),
        ("A-b.c_d~" + "9" * 40, True),
        ("a" * 42 + "+", False),
        ("a" * 42 + "=", False),
        ("", False),
        (None, False),
    ],
)
def test_verifier_format(verifier, valid):
    assert pkce.is_valid_verifier(verifier) is valid


def test_generated_verifier_is_valid():
    verifier = pkce.generate_verifier()
    assert pkce.is_valid_verifier(verifier)
    assert verifier != pkce.generate_verifier()
