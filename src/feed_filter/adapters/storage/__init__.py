"""Storage adapters."""

from feed_filter.adapters.storage.yaml_storage import YamlFileStorage

__all__ = ["YamlFileStorage"]
