"""
Configuration subsystem.

- **config.py**: static configuration from environment variables (.env support)
- **manager.py**: game balance values from YAML with runtime overrides

`ConfigManager` is imported from its own module because the logging
subsystem depends on `Config` and the manager depends on logging.

Usage
-----
```python
from idleguild.core.config import Config
from idleguild.core.config.manager import ConfigManager

db_url = Config.DATABASE_URL
minimum_bet = ConfigManager.get("battle.minimum_bet", 200)
```
"""

from idleguild.core.config.config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
