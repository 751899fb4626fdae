"""
Configuration management subsystem for Guildhall.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup (.env support)
- Includes: database URL, pool sizes, environment, logging switches
- Changes require application restart

**Dynamic (ConfigManager):**
- Loaded from code defaults + YAML files under config/ + database overrides
- Includes: invitation expiry, member caps, permission table overrides
- Overrides written through ConfigManager.set are persisted and cached

Usage
-----
```python
from src.core.config import Config, ConfigManager

db_url = Config.DATABASE_URL

await ConfigManager.initialize()
expiry_days = ConfigManager.get("community.invitations.expiry_days", 7)
```
"""

from src.core.config.config import Config, Environment
from src.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
]
