from __future__ import annotations

import logging
from typing import Iterable

from apiposture.models import ScanResult
from apiposture.rules.base import Rule
from apiposture.rules.engine import RuleEngine

logger = logging.getLogger(__name__)


class Extension:
    """A rule provider that can hook into the scan lifecycle.

    Subclasses set the identifying attributes and return their rules from `rules()`.
    Providers are unlicensed unless they say otherwise; an unlicensed provider's rules
    never reach the engine.
    """

    extension_id: str = ""
    name: str = ""
    version: str = "0.0.0"

    def is_licensed(self) -> bool:
        return False

    def rules(self) -> Iterable[Rule]:
        return ()

    def on_scan_start(self, project_path: str) -> None:
        return None

    def on_scan_complete(self, result: ScanResult) -> None:
        return None


class ExtensionManager:
    def __init__(self, extensions: Iterable[Extension] = ()) -> None:
        self._extensions: dict[str, Extension] = {}
        for extension in extensions:
            self.register(extension)

    @property
    def extensions(self) -> list[Extension]:
        return list(self._extensions.values())

    def has_extensions(self) -> bool:
        return bool(self._extensions)

    def get(self, extension_id: str) -> Extension | None:
        return self._extensions.get(extension_id)

    def register(self, extension: Extension) -> None:
        if not extension.extension_id:
            raise ValueError("Extension id must be non-empty")
        if extension.extension_id in self._extensions:
            raise ValueError(f"Extension '{extension.extension_id}' is already registered")
        self._extensions[extension.extension_id] = extension

    def unregister(self, extension_id: str) -> None:
        self._extensions.pop(extension_id, None)

    def licensed_rules(self) -> list[Rule]:
        rules: list[Rule] = []
        for extension in self._extensions.values():
            if not extension.is_licensed():
                logger.info("Skipping rules of unlicensed extension %s", extension.extension_id)
                continue
            rules.extend(extension.rules())
        return rules

    def install_into(self, engine: RuleEngine) -> list[str]:
        rules = self.licensed_rules()
        engine.register_all(rules)
        installed = [rule.rule_id for rule in rules]
        if installed:
            logger.debug("Registered extension rules: %s", ", ".join(installed))
        return installed

    def notify_scan_start(self, project_path: str) -> None:
        for extension in self._extensions.values():
            try:
                extension.on_scan_start(project_path)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Extension %s failed on scan start: %s", extension.extension_id, exc)

    def notify_scan_complete(self, result: ScanResult) -> None:
        for extension in self._extensions.values():
            try:
                extension.on_scan_complete(result)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Extension %s failed on scan complete: %s", extension.extension_id, exc)
