REDIS_BANNED_IPS_KEY = "ban:ips" # set of banned client addresses
REDIS_BANNED_PARTICIPANTS_KEY = "ban:participants" # set of banned participant / machine ids
REDIS_BAN_UPDATED_KEY = "ban:updated_at" # ISO timestamp of the last ban list change

# Rooms and sessions are never written to Redis: they live in process memory
# for the lifetime of the room and disappear with it.
