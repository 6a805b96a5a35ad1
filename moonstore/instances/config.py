"""Global settings instance."""

from moonstore.core.config import MoonStoreConf

settings = MoonStoreConf()
