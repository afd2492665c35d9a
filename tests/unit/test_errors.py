"""Tests for the MirrorError taxonomy."""

from __future__ import annotations

from providermirror.errors import (
    ErrorCode,
    MirrorError,
    conflict,
    error_code,
    forbidden,
    invalid,
    not_found,
    wrap,
)


class TestMirrorError:
    def test_default_code_is_internal(self):
        assert MirrorError("boom").code == ErrorCode.INTERNAL

    def test_constructors(self):
        assert invalid("x").code == ErrorCode.INVALID
        assert not_found("x").code == ErrorCode.NOT_FOUND
        assert forbidden("x").code == ErrorCode.FORBIDDEN
        assert conflict("x").code == ErrorCode.CONFLICT

    def test_internal_message_is_hidden(self):
        err = MirrorError("database exploded at /var/lib/db")
        assert err.public_message() == "An internal error occurred"
        assert "exploded" in err.message

    def test_public_message_for_coded_errors(self):
        assert invalid("bad version").public_message() == "bad version"


class TestWrap:
    def test_keeps_inner_code(self):
        wrapped = wrap(not_found("group missing"), "failed to list")
        assert wrapped.code == ErrorCode.NOT_FOUND
        assert wrapped.message == "failed to list: group missing"

    def test_foreign_exception_becomes_internal(self):
        wrapped = wrap(OSError("disk full"), "failed to store")
        assert wrapped.code == ErrorCode.INTERNAL
        assert error_code(OSError()) == ErrorCode.INTERNAL

    def test_explicit_code_overrides(self):
        wrapped = wrap(ConnectionError("refused"), "registry", code=ErrorCode.NOT_FOUND)
        assert wrapped.code == ErrorCode.NOT_FOUND
