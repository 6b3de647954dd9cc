import toml
import os
import logging
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    # Snippets: trigger -> expansion text, or trigger -> table with
    # expansion / trigger_mode / case_transform / enabled / label
    snippets: dict = None

    # Matching
    case_sensitive: bool = True
    trigger_mode: str = "word"  # word, word-both, anywhere
    case_transform: str = "none"  # none, upper, lower, title, capitalize, match

    # Locking
    lock_cooldown_ms: int = 500
    failure_cooldown_ms: int = 5000
    use_fallback_chain: bool = False

    # Clipboard
    allow_clipboard_access: bool = True
    clipboard_history_size: int = 10

    # Desktop output
    paste_method: str = "type"  # type, ctrl_v
    paste_threshold: int = 200  # ctrl_v only kicks in for insertions at least this long
    typing_delay: float = 0.0  # Seconds between synthetic keystrokes

    debug: bool = False

    def __post_init__(self):
        if self.snippets is None:
            self.snippets = {
                "brb": "be right back",
                "ddate": "{date:MMMM Do, YYYY}",
                "sig": "Best regards,{enter}{cursor}",
            }


class ConfigManager:
    def __init__(self, config_file=None):
        self.config_dir = os.path.join(
            os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config")),
            "snipsmith"
        )
        self.config_file = config_file or os.path.join(self.config_dir, "config.toml")
        self.config = AppConfig()
        self.load()

    def load(self):
        if not os.path.exists(self.config_file):
            self.save()  # Create default
            return

        try:
            with open(self.config_file, "r") as f:
                data = toml.load(f)
        except (OSError, toml.TomlDecodeError) as e:
            logger.error(f"Failed to load config: {e}")
            return

        # Known keys only; anything else in the file is ignored
        for key, value in data.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
            else:
                logger.debug(f"Ignoring unknown config key: {key}")

    def save(self):
        try:
            os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
            with open(self.config_file, "w") as f:
                toml.dump(asdict(self.config), f)
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def get(self) -> AppConfig:
        return self.config
