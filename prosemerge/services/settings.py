"""
Application settings management.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TypeVar

from prosemerge.core.alignment import AlignmentOptions, AlignmentStrategy
from prosemerge.core.merge.three_way import MergeOptions
from prosemerge.core.models import ConflictStrategy, SimilarityThresholds
from prosemerge.core.segmentation import Granularity, SegmentationOptions
from prosemerge.services.embeddings import (
    DEFAULT_CACHE_SIZE,
    DEFAULT_MODEL_NAME,
    EmbeddingBackend,
)


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'PROSEMERGE_CONFIG'

E = TypeVar('E', bound=Enum)


class OutputFormat(Enum):
    """Format of command output."""
    TEXT = "text"
    JSON = "json"


def enum_from_value(enum_class: type[E], value: Any) -> E:
    """Match an enum by value or name; unknown values give the first member."""
    if isinstance(value, enum_class):
        return value
    if isinstance(value, str):
        for member in enum_class:
            if member.value == value.lower() or member.name == value.upper():
                return member
    return list(enum_class)[0]


@dataclass
class SegmentationSettings:
    """Settings for splitting text into units."""
    granularity: Granularity = Granularity.SENTENCE
    preserve_markdown: bool = True


@dataclass
class AlignmentSettings:
    """Settings for aligning unit sequences."""
    strategy: AlignmentStrategy = AlignmentStrategy.HYBRID
    match_threshold: float = 0.75


@dataclass
class MergeSettings:
    """Settings for merge operations."""
    conflict_strategy: ConflictStrategy = ConflictStrategy.PREFER_C
    equivalent_threshold: float = 0.95
    similar_threshold: float = 0.80


@dataclass
class EmbeddingSettings:
    """Settings for the embedding backend."""
    backend: EmbeddingBackend = EmbeddingBackend.ML
    model_name: str = DEFAULT_MODEL_NAME
    cache_size: int = DEFAULT_CACHE_SIZE


@dataclass
class OutputSettings:
    """Settings for written results."""
    format: OutputFormat = OutputFormat.TEXT
    create_backup: bool = False
    backup_extension: str = ".orig"


@dataclass
class ApplicationSettings:
    """Main application settings container."""
    segmentation: SegmentationSettings = field(default_factory=SegmentationSettings)
    alignment: AlignmentSettings = field(default_factory=AlignmentSettings)
    merge: MergeSettings = field(default_factory=MergeSettings)
    embeddings: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    def segmentation_options(self) -> SegmentationOptions:
        return SegmentationOptions(
            granularity=self.segmentation.granularity,
            preserve_markdown=self.segmentation.preserve_markdown,
        )

    def alignment_options(self) -> AlignmentOptions:
        return AlignmentOptions(
            strategy=self.alignment.strategy,
            match_threshold=self.alignment.match_threshold,
        )

    def merge_options(self, strategy: Optional[ConflictStrategy] = None) -> MergeOptions:
        """Merge options from settings; ``strategy`` overrides the configured one."""
        return MergeOptions(
            conflict_strategy=strategy or self.merge.conflict_strategy,
            thresholds=SimilarityThresholds(
                equivalent_threshold=self.merge.equivalent_threshold,
                similar_threshold=self.merge.similar_threshold,
            ),
            alignment_strategy=self.alignment.strategy,
            match_threshold=self.alignment.match_threshold,
            segmentation=self.segmentation_options(),
        )


class SettingsManager:
    """Manager for loading/saving application settings."""

    def __init__(self, settings_path: Optional[Path | str] = None):
        if settings_path is None:
            settings_path = os.environ.get(CONFIG_ENV_VAR) or self._get_default_path()
        self.settings_path = Path(settings_path)
        self._settings: Optional[ApplicationSettings] = None

    @staticmethod
    def _get_default_path() -> Path:
        """Get the default settings file path."""
        if os.name == 'nt':
            # Windows
            app_data = os.environ.get('APPDATA', os.path.expanduser('~'))
            return Path(app_data) / 'ProseMerge' / 'settings.json'
        else:
            # Linux/Mac
            config_home = os.environ.get('XDG_CONFIG_HOME',
                                         os.path.expanduser('~/.config'))
            return Path(config_home) / 'prosemerge' / 'settings.json'

    @property
    def settings(self) -> ApplicationSettings:
        """Get current settings, loading from disk if needed."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> ApplicationSettings:
        """Load settings from disk; defaults when missing or unreadable."""
        if not self.settings_path.exists():
            return ApplicationSettings()

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read settings from {self.settings_path}: {e}")
            return ApplicationSettings()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings in {self.settings_path}: expected a JSON object")
            return ApplicationSettings()

        try:
            return self._from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid settings in {self.settings_path}: {e}")
            return ApplicationSettings()

    def save(self, settings: Optional[ApplicationSettings] = None) -> bool:
        """Save settings to disk."""
        settings = settings or self._settings
        if settings is None:
            return False

        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(self._to_dict(settings), f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save settings to {self.settings_path}: {e}")
            return False

        self._settings = settings
        return True

    def reset(self) -> ApplicationSettings:
        """Reset to default settings."""
        self._settings = ApplicationSettings()
        self.save()
        return self._settings

    def _to_dict(self, settings: ApplicationSettings) -> dict:
        """Convert settings to dictionary for JSON serialization."""
        def convert(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert(item) for item in obj]
            return obj

        return convert(asdict(settings))

    def _from_dict(self, data: dict) -> ApplicationSettings:
        """Convert dictionary back to settings objects."""
        def section(name: str) -> dict:
            value = data.get(name, {})
            return value if isinstance(value, dict) else {}

        segmentation_data = section('segmentation')
        segmentation = SegmentationSettings(
            granularity=enum_from_value(
                Granularity, segmentation_data.get('granularity', 'sentence')),
            preserve_markdown=segmentation_data.get('preserve_markdown', True),
        )

        alignment_data = section('alignment')
        alignment = AlignmentSettings(
            strategy=enum_from_value(
                AlignmentStrategy, alignment_data.get('strategy', 'hybrid')),
            match_threshold=float(alignment_data.get('match_threshold', 0.75)),
        )

        merge_data = section('merge')
        merge = MergeSettings(
            conflict_strategy=enum_from_value(
                ConflictStrategy, merge_data.get('conflict_strategy', 'prefer-c')),
            equivalent_threshold=float(merge_data.get('equivalent_threshold', 0.95)),
            similar_threshold=float(merge_data.get('similar_threshold', 0.80)),
        )

        embeddings_data = section('embeddings')
        embeddings = EmbeddingSettings(
            backend=enum_from_value(EmbeddingBackend, embeddings_data.get('backend', 'ml')),
            model_name=embeddings_data.get('model_name', DEFAULT_MODEL_NAME),
            cache_size=int(embeddings_data.get('cache_size', DEFAULT_CACHE_SIZE)),
        )

        output_data = section('output')
        output = OutputSettings(
            format=enum_from_value(OutputFormat, output_data.get('format', 'text')),
            create_backup=output_data.get('create_backup', False),
            backup_extension=output_data.get('backup_extension', '.orig'),
        )

        return ApplicationSettings(
            segmentation=segmentation,
            alignment=alignment,
            merge=merge,
            embeddings=embeddings,
            output=output,
        )
