"""
Tests for the Redis-backed ban list.
"""

from unittest.mock import MagicMock

import redis

from backend import BanListBackend
from constants import BAN_MESSAGE
from redis_keys import REDIS_BANNED_IPS_KEY, REDIS_BANNED_PARTICIPANTS_KEY


class TestBanStatus:
    def test_clean_request_is_not_banned(self, ban_list):
        status = ban_list.check_ban_status("198.51.100.4", "c1")

        assert status.is_banned is False
        assert status.reason is None
        assert status.message is None

    def test_banned_ip(self, ban_list):
        ban_list.ban_ip("198.51.100.4")

        status = ban_list.check_ban_status(" 198.51.100.4 ", "c1")

        assert status.is_banned is True
        assert status.reason == "IP_BANNED"
        assert status.message == BAN_MESSAGE

    def test_banned_participant(self, ban_list):
        ban_list.ban_participant("spam001")

        status = ban_list.check_ban_status("198.51.100.4", "spam001")

        assert status.is_banned is True
        assert status.reason == "MACHINE_ID_BANNED"

    def test_ip_ban_takes_precedence(self, ban_list):
        ban_list.ban_ip("198.51.100.4")
        ban_list.ban_participant("spam001")

        assert ban_list.check_ban_status("198.51.100.4", "spam001").reason == "IP_BANNED"

    def test_empty_inputs_are_never_banned(self, ban_list, fake_redis):
        fake_redis.sadd(REDIS_BANNED_IPS_KEY, "")

        assert ban_list.is_ip_banned(None) is False
        assert ban_list.is_ip_banned("   ") is False
        assert ban_list.is_participant_banned("") is False
        assert ban_list.ban_ip("  ") == 0

    def test_unban(self, ban_list):
        ban_list.ban_participant("spam001")
        assert ban_list.unban_participant("spam001") == 1
        ban_list.ban_ip("198.51.100.4")
        assert ban_list.unban_ip("198.51.100.4") == 1

        assert ban_list.check_ban_status("198.51.100.4", "spam001").is_banned is False

    def test_redis_outage_fails_open(self):
        client = MagicMock()
        client.sismember.side_effect = redis.ConnectionError("connection refused")
        ban_list = BanListBackend(client=client)

        status = ban_list.check_ban_status("198.51.100.4", "c1")

        assert status.is_banned is False


class TestBanListMaintenance:
    def test_seed_adds_configured_entries_once(self, ban_list, fake_redis):
        assert ban_list.seed(["203.0.113.1", "203.0.113.2"], ["bad-machine"]) == 3
        assert ban_list.seed(["203.0.113.1"], []) == 0

        assert fake_redis.sets[REDIS_BANNED_IPS_KEY] == {"203.0.113.1", "203.0.113.2"}
        assert fake_redis.sets[REDIS_BANNED_PARTICIPANTS_KEY] == {"bad-machine"}

    def test_stats(self, ban_list):
        ban_list.seed(["203.0.113.1", "203.0.113.2"], ["bad-machine"])

        stats = ban_list.get_stats()

        assert stats.available is True
        assert stats.banned_ips == 2
        assert stats.banned_participant_ids == 1
        assert stats.total_banned == 3
        assert stats.last_updated is not None

    def test_stats_when_redis_is_down(self):
        client = MagicMock()
        client.scard.side_effect = redis.ConnectionError("connection refused")

        stats = BanListBackend(client=client).get_stats()

        assert stats.available is False
        assert stats.total_banned == 0

    def test_ping(self, ban_list):
        assert ban_list.ping() is True

        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("connection refused")
        assert BanListBackend(client=client).ping() is False
