"""
Tests for message text encryption.
"""

import os

import pytest

from support_chat.database.encryption import (
    MASTER_KEY_ENV,
    EncryptionError,
    EncryptionManager,
)


class TestEncryptionManager:
    def test_encrypt_decrypt(self):
        manager = EncryptionManager(master_key="master")

        token, key_id = manager.encrypt("refund please")

        assert key_id == "primary_v1"
        assert token != "refund please"
        assert manager.decrypt(token, key_id) == "refund please"

    def test_same_master_key_interoperates(self):
        token, key_id = EncryptionManager(master_key="master").encrypt("hello")
        assert EncryptionManager(master_key="master").decrypt(token, key_id) == "hello"

    def test_wrong_master_key(self):
        token, key_id = EncryptionManager(master_key="master").encrypt("hello")

        with pytest.raises(EncryptionError):
            EncryptionManager(master_key="other").decrypt(token, key_id)

    def test_master_key_from_environment(self):
        os.environ[MASTER_KEY_ENV] = "from-env"
        token, key_id = EncryptionManager().encrypt("hello")

        assert EncryptionManager(master_key="from-env").decrypt(token, key_id) == "hello"

    def test_ephemeral_key_when_unconfigured(self):
        first = EncryptionManager()
        token, key_id = first.encrypt("hello")

        assert first.decrypt(token, key_id) == "hello"
        with pytest.raises(EncryptionError):
            EncryptionManager().decrypt(token, key_id)

    def test_rotate_key_keeps_old_rows_readable(self):
        manager = EncryptionManager(master_key="master")
        old_token, old_key = manager.encrypt("before")

        manager.rotate_key("primary_v2")
        new_token, new_key = manager.encrypt("after")

        assert manager.current_key_id == "primary_v2"
        assert new_key == "primary_v2"
        assert manager.decrypt(old_token, old_key) == "before"
        assert manager.decrypt(new_token, new_key) == "after"
