from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

_NAME_CLEANUP = re.compile(r'[^\w\s/-]')


@dataclass(frozen=True)
class PackageVolumeTable:
    """Read-only package type -> barrels-per-unit lookup, built once at startup."""

    volumes: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'volumes', MappingProxyType(dict(self.volumes)))

    def __contains__(self, package_type: object) -> bool:
        return package_type in self.volumes

    def names(self) -> list[str]:
        return list(self.volumes.keys())

    def volume_per_unit(self, package_type: str) -> Decimal:
        return self.volumes[package_type]

    @staticmethod
    def is_keg(package_type: str) -> bool:
        return 'Keg' in package_type


def build_package_table(entries: list[dict]) -> PackageVolumeTable:
    volumes: dict[str, Decimal] = {}
    for entry in entries:
        name = _NAME_CLEANUP.sub('', str(entry.get('name') or '')).strip()
        try:
            volume = Decimal(str(entry.get('volume', '0')))
        except InvalidOperation:
            logger.warning('Skipping package type %r with unreadable volume %r', name, entry.get('volume'))
            continue
        if not name or volume <= 0 or not entry.get('enabled', True):
            continue
        volumes[name] = volume
    return PackageVolumeTable(volumes)


def load_package_table(path: Path) -> PackageVolumeTable:
    with Path(path).open(encoding='utf-8') as handle:
        payload = json.load(handle)
    table = build_package_table(payload.get('packageTypes', []))
    logger.info('Loaded %d package types from %s', len(table.volumes), path)
    return table
