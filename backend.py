import redis
from datetime import datetime, timezone
from typing import Iterable, Optional
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, BAN_MESSAGE
from redis_keys import REDIS_BANNED_IPS_KEY, REDIS_BANNED_PARTICIPANTS_KEY, REDIS_BAN_UPDATED_KEY
from schemas.rooms import BanListStats, BanStatus
from logging_config import get_logger

logger = get_logger(__name__)

# Constructing the client does not open a connection; the app pings it on startup.
redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)


def _normalize(value: Optional[str]) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


class BanListBackend:
    """Ban list stored as two Redis sets: client addresses and participant/machine ids."""

    def __init__(self, client=None):
        self.redis_client = client if client is not None else redis_client
        logger.info(f"Initializing BanListBackend with connection to {REDIS_HOST}:{REDIS_PORT}")

    def ping(self) -> bool:
        try:
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}")
            return False

    def seed(self, ips: Iterable[str] = (), participant_ids: Iterable[str] = ()) -> int:
        """Load the configured static ban entries. Returns the number of entries added."""
        added = 0
        try:
            for ip in ips:
                added += self.ban_ip(ip)
            for participant_id in participant_ids:
                added += self.ban_participant(participant_id)
        except redis.RedisError as e:
            logger.error(f"Could not seed ban list: {e}")
        logger.info(f"Ban list seeded with {added} new entries")
        return added

    def _add(self, key: str, value: Optional[str]) -> int:
        value = _normalize(value)
        if value is None:
            return 0
        added = self.redis_client.sadd(key, value)
        if added:
            self.redis_client.set(REDIS_BAN_UPDATED_KEY, datetime.now(timezone.utc).isoformat())
        return int(added)

    def _remove(self, key: str, value: Optional[str]) -> int:
        value = _normalize(value)
        if value is None:
            return 0
        removed = self.redis_client.srem(key, value)
        if removed:
            self.redis_client.set(REDIS_BAN_UPDATED_KEY, datetime.now(timezone.utc).isoformat())
        return int(removed)

    def ban_ip(self, ip: str) -> int:
        logger.info(f"Banning client address {ip}")
        return self._add(REDIS_BANNED_IPS_KEY, ip)

    def unban_ip(self, ip: str) -> int:
        logger.info(f"Unbanning client address {ip}")
        return self._remove(REDIS_BANNED_IPS_KEY, ip)

    def ban_participant(self, participant_id: str) -> int:
        logger.info(f"Banning participant {participant_id}")
        return self._add(REDIS_BANNED_PARTICIPANTS_KEY, participant_id)

    def unban_participant(self, participant_id: str) -> int:
        logger.info(f"Unbanning participant {participant_id}")
        return self._remove(REDIS_BANNED_PARTICIPANTS_KEY, participant_id)

    def is_ip_banned(self, ip: Optional[str]) -> bool:
        ip = _normalize(ip)
        if ip is None:
            return False
        return bool(self.redis_client.sismember(REDIS_BANNED_IPS_KEY, ip))

    def is_participant_banned(self, participant_id: Optional[str]) -> bool:
        participant_id = _normalize(participant_id)
        if participant_id is None:
            return False
        return bool(self.redis_client.sismember(REDIS_BANNED_PARTICIPANTS_KEY, participant_id))

    def check_ban_status(self, client_address: Optional[str], participant_id: Optional[str]) -> BanStatus:
        try:
            if self.is_ip_banned(client_address):
                logger.warning(f"Rejected banned client address {client_address}")
                return BanStatus(is_banned=True, reason="IP_BANNED", message=BAN_MESSAGE)
            if self.is_participant_banned(participant_id):
                logger.warning(f"Rejected banned participant {participant_id}")
                return BanStatus(is_banned=True, reason="MACHINE_ID_BANNED", message=BAN_MESSAGE)
        except redis.RedisError as e:
            # Fail open
            logger.error(f"Ban check unavailable for {client_address}/{participant_id}: {e}")
        return BanStatus(is_banned=False)

    def get_stats(self) -> BanListStats:
        try:
            banned_ips = self.redis_client.scard(REDIS_BANNED_IPS_KEY)
            banned_participants = self.redis_client.scard(REDIS_BANNED_PARTICIPANTS_KEY)
            updated_at = self.redis_client.get(REDIS_BAN_UPDATED_KEY)
        except redis.RedisError as e:
            logger.error(f"Could not read ban list stats: {e}")
            return BanListStats(available=False)
        return BanListStats(
            banned_ips=banned_ips,
            banned_participant_ids=banned_participants,
            total_banned=banned_ips + banned_participants,
            last_updated=updated_at,
        )


ban_list_backend = BanListBackend()


def get_ban_list() -> BanListBackend:
    return ban_list_backend
