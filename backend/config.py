import os


def _list(value):
    return [item.strip() for item in value.split(',') if item.strip()]


def _flag(value):
    return str(value).lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    CORS_ORIGINS = _list(os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
    ))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # JSON map definition; unset uses the bundled small map
    MAP_PATH = os.environ.get('MAP_PATH')
    # Game rules
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '6'))
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    MAX_ROUNDS = int(os.environ.get('MAX_ROUNDS', '24'))
    # Unset lets the map's own reveal rounds apply
    REVEAL_ROUNDS = [int(r) for r in _list(os.environ.get('REVEAL_ROUNDS', ''))]
    # Capacity and back-pressure
    MAX_ROOMS = int(os.environ.get('MAX_ROOMS', '100'))
    SESSION_QUEUE_SIZE = int(os.environ.get('SESSION_QUEUE_SIZE', '64'))
    ENQUEUE_TIMEOUT_SEC = float(os.environ.get('ENQUEUE_TIMEOUT_SEC', '0.5'))
    COMMAND_TIMEOUT_SEC = float(os.environ.get('COMMAND_TIMEOUT_SEC', '5'))
    OUTBOX_SIZE = int(os.environ.get('OUTBOX_SIZE', '256'))
    # Send frames inline instead of through per-connection pump tasks
    SYNC_FANOUT = _flag(os.environ.get('SYNC_FANOUT', 'false'))
    # Apply room commands on the calling handler instead of a per-room worker
    INLINE_SESSIONS = _flag(os.environ.get('INLINE_SESSIONS', 'false'))
    # Timers (seconds). TURN_TIMEOUT_SEC 0 disables skipping offline players.
    TURN_TIMEOUT_SEC = float(os.environ.get('TURN_TIMEOUT_SEC', '0'))
    ROOM_IDLE_TIMEOUT_SEC = int(os.environ.get('ROOM_IDLE_TIMEOUT_SEC', '600'))
    WAITING_ROOM_TTL_SEC = int(os.environ.get('WAITING_ROOM_TTL_SEC', '1800'))
    ROOM_TTL_SEC = int(os.environ.get('ROOM_TTL_SEC', '7200'))
    RECONNECT_TIMEOUT_SEC = int(os.environ.get('RECONNECT_TIMEOUT_SEC', '300'))
    GC_INTERVAL_SEC = int(os.environ.get('GC_INTERVAL_SEC', '60'))
    # Unset leaves admin events and /api/admin open
    ADMIN_TOKEN = os.environ.get('ADMIN_TOKEN')
    # Rate limits. HTTP is per client IP; socket limits count one action per connection.
    HTTP_RATE_LIMIT = os.environ.get('HTTP_RATE_LIMIT', '100 per 15 minutes')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    SOCKET_RATE_LIMIT = int(os.environ.get('SOCKET_RATE_LIMIT', '5'))
    SOCKET_RATE_WINDOW_SEC = float(os.environ.get('SOCKET_RATE_WINDOW_SEC', '10'))
