"""
Bot Fleet — Configuration
All tunable parameters in one place.
"""

import os
from dataclasses import dataclass, field


@dataclass
class ServerConfig:
    host: str = "localhost"
    port: int = 25565
    version: str = "1.20.1"             # Protocol version handed to every session


@dataclass
class BridgeConfig:
    url: str = "ws://127.0.0.1:3000"    # Game-session bridge endpoint
    connect_timeout: int = 30           # Seconds


@dataclass
class ReconnectConfig:
    auto_reconnect: bool = True
    delay: float = 15.0                 # After a session ends
    start_delay: float = 2.0            # After an operator start
    throttle_after_attempts: int = 3    # Throttle once attempts exceed this
    throttle_window: float = 30.0       # Seconds since last attempt


@dataclass
class FleetLimits:
    max_slots: int = 20
    initial_count: int = 1
    add_stagger: float = 1.0            # Seconds between staggered connects


@dataclass
class GlobalLeaveConfig:
    trigger_phrase: str = "bot leave"
    duration: float = 60.0
    retry_margin: float = 1.0           # Deferred connects fire at duration + margin
    max_stagger: float = 3.0
    warning_message: str = "Leaving due to global command..."


@dataclass
class CombatConfig:
    tick_interval: float = 0.5
    attack_range: float = 4.0
    follow_distance: int = 3
    first_mock_delay: float = 1.0
    mock_interval_min: float = 10.0
    mock_interval_jitter: float = 10.0  # Interval is min + random() * jitter
    dodge_duration: float = 0.3


@dataclass
class AuthConfig:
    auto_auth: bool = False
    password: str = ""
    join_command_enabled: bool = False
    join_command: str = ""
    step_delay: float = 2.0


@dataclass
class UtilsConfig:
    anti_afk: bool = True
    chat_log: bool = True


@dataclass
class DashboardConfig:
    host: str = "0.0.0.0"
    port: int = 5000


@dataclass
class StorageConfig:
    db_path: str = "./data/fleet.db"
    max_history: int = 10


@dataclass
class FleetConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    limits: FleetLimits = field(default_factory=FleetLimits)
    global_leave: GlobalLeaveConfig = field(default_factory=GlobalLeaveConfig)
    combat: CombatConfig = field(default_factory=CombatConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    utils: UtilsConfig = field(default_factory=UtilsConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "FleetConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.server.host = os.getenv("MC_HOST", config.server.host)
        config.server.port = int(os.getenv("MC_PORT", str(config.server.port)))
        config.server.version = os.getenv("MC_VERSION", config.server.version)
        config.bridge.url = os.getenv("BRIDGE_URL", config.bridge.url)
        config.reconnect.auto_reconnect = os.getenv("AUTO_RECONNECT", "true").lower() == "true"
        config.reconnect.delay = float(os.getenv("RECONNECT_DELAY", str(config.reconnect.delay)))
        config.limits.initial_count = int(os.getenv("INITIAL_BOTS", str(config.limits.initial_count)))
        config.auth.password = os.getenv("AUTH_PASSWORD", "")
        config.auth.auto_auth = bool(config.auth.password)
        config.auth.join_command = os.getenv("JOIN_COMMAND", "")
        config.auth.join_command_enabled = bool(config.auth.join_command)
        config.utils.anti_afk = os.getenv("ANTI_AFK", "true").lower() == "true"
        config.utils.chat_log = os.getenv("CHAT_LOG", "true").lower() == "true"
        config.dashboard.port = int(os.getenv("PORT", str(config.dashboard.port)))
        config.storage.db_path = os.getenv("DB_PATH", config.storage.db_path)
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        return config
