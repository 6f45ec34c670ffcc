from dataclasses import dataclass, field
from pathlib import Path

from pegeldict.io.paths import DataPaths, build_data_paths
from pegeldict.utils.http import DEFAULT_MAX_CONCURRENT

DEFAULT_REGISTRY_URL = "https://www.pegelonline.wsv.de/webservices/rest-api/v2"
DEFAULT_GEOCODE_URL = "https://nominatim.openstreetmap.org"
DEFAULT_TIER_KEYS = ("NAME_2500", "NAME_1000", "NAME_500")


@dataclass
class ServiceConfig:
    registry_base_url: str = DEFAULT_REGISTRY_URL
    geocode_base_url: str = DEFAULT_GEOCODE_URL
    baseline_language: str = "de"
    extra_languages: tuple[str, ...] = ()
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    timeout_seconds: float = 20.0
    user_agent: str = "pegeldict/0.1 (+contact: none)"
    topic_base: str = "edis/pegelonline"
    link_base_url: str | None = None
    boundary_tier_keys: tuple[str, ...] = DEFAULT_TIER_KEYS
    data_dir: Path = field(default_factory=lambda: Path.cwd() / "data")
    cron: str = "0 3 * * *"
    run_on_startup: bool = True
    show_progress: bool = True

    @property
    def languages(self) -> list[str]:
        languages = [self.baseline_language]
        for language in self.extra_languages:
            if language and language not in languages:
                languages.append(language)
        return languages

    @property
    def resolved_link_base_url(self) -> str:
        return (self.link_base_url or self.registry_base_url).rstrip("/")

    @property
    def paths(self) -> DataPaths:
        return build_data_paths(self.data_dir)
