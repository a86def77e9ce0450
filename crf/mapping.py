"""
Mapping Table Module

A mapping table tells the pipeline which printed labels to look for and
where each value goes in the output document. There is one table per form
variant, stored as YAML under config/mappings/:

    form_type: male_infertility
    display_name: Male Infertility
    settings:
      variant_marker:
        label: Smoking Status
        path: crfType
    fields:
      - label: Id
        path: patientDetails
      - label: Age
        path: demographics.age

Tables are loaded once and never modified afterwards. They are passed to
the pipeline explicitly, so running a different form variant is just a
matter of passing a different table.

Load-time checks catch malformed tables before any document is processed:
- every entry needs a non-blank label and path
- labels are unique within a table
- no path may be a strict prefix of another ("a.b" vs "a.b.c"), since the
  first would need to be both a value and a container
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from loguru import logger

from .document import split_path
from .errors import MappingConfigurationError


DEFAULT_SUBJECT_ID_LABEL = "Id"
DEFAULT_SUBJECT_ID_PATH = "patientDetails"
DEFAULT_SCHEDULED_DATE_LABEL = "Scheduled Date"
DEFAULT_SCHEDULED_DATE_PATH = "scheduledDate"
DEFAULT_VARIANT_MARKER_LABEL = "Smoking Status"
DEFAULT_VARIANT_MARKER_PATH = "crfType"


@dataclass(frozen=True)
class MappingEntry:
    """One printed label and the document path its value is written to."""
    label: str
    path: str

    @classmethod
    def from_dict(cls, data: dict) -> 'MappingEntry':
        """Create MappingEntry from a config dict."""
        if not isinstance(data, dict):
            raise MappingConfigurationError(f"Mapping entry must be a mapping, got: {data!r}")

        label = str(data.get('label') or '').strip()
        path = str(data.get('path') or '').strip()
        if not label:
            raise MappingConfigurationError(f"Mapping entry without label: {data!r}")
        if not path:
            raise MappingConfigurationError(f"Mapping entry '{label}' has no path")

        split_path(path)
        return cls(label=label, path=path)


@dataclass(frozen=True)
class MappingSettings:
    """
    Reserved bindings of a table.

    Reserved labels are never searched for in the text; their paths are
    filled from the caller's context instead. The variant marker label is
    searched for normally; whether it was found is written at
    variant_marker_path on every run (never found when the label is None).
    """
    subject_id_label: str = DEFAULT_SUBJECT_ID_LABEL
    subject_id_path: str = DEFAULT_SUBJECT_ID_PATH
    scheduled_date_label: str = DEFAULT_SCHEDULED_DATE_LABEL
    scheduled_date_path: str = DEFAULT_SCHEDULED_DATE_PATH
    variant_marker_label: Optional[str] = DEFAULT_VARIANT_MARKER_LABEL
    variant_marker_path: str = DEFAULT_VARIANT_MARKER_PATH

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'MappingSettings':
        """Create MappingSettings from the `settings` section of a table."""
        data = _section(data, 'settings')
        subject_id = _section(data.get('subject_id'), 'settings.subject_id')
        scheduled_date = _section(data.get('scheduled_date'), 'settings.scheduled_date')
        marker = data.get('variant_marker', {})

        # An explicit null disables marker detection; the flag is still written
        if marker is None:
            marker_label = None
            marker_path = DEFAULT_VARIANT_MARKER_PATH
        else:
            marker = _section(marker, 'settings.variant_marker')
            marker_label = marker.get('label', DEFAULT_VARIANT_MARKER_LABEL)
            marker_path = marker.get('path', DEFAULT_VARIANT_MARKER_PATH)

        return cls(
            subject_id_label=subject_id.get('label', DEFAULT_SUBJECT_ID_LABEL),
            subject_id_path=subject_id.get('path', DEFAULT_SUBJECT_ID_PATH),
            scheduled_date_label=scheduled_date.get('label', DEFAULT_SCHEDULED_DATE_LABEL),
            scheduled_date_path=scheduled_date.get('path', DEFAULT_SCHEDULED_DATE_PATH),
            variant_marker_label=marker_label,
            variant_marker_path=marker_path,
        )

    @property
    def reserved_labels(self) -> frozenset[str]:
        return frozenset({self.subject_id_label, self.scheduled_date_label})

    def fixed_paths(self) -> list[str]:
        """Paths the pipeline writes regardless of the document text."""
        return [self.subject_id_path, self.scheduled_date_path, self.variant_marker_path]


def _section(value: Any, name: str) -> dict:
    """Return a settings sub-section, treating a missing one as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MappingConfigurationError(
            f"'{name}' must be a mapping with label/path keys, got: {value!r}"
        )
    return value


@dataclass(frozen=True)
class MappingTable:
    """Ordered, immutable label->path table for one form variant."""
    form_type: str
    entries: tuple[MappingEntry, ...]
    display_name: str = ""
    settings: MappingSettings = field(default_factory=MappingSettings)

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_dict(cls, data: dict, default_form_type: str = "") -> 'MappingTable':
        """Create MappingTable from a parsed YAML document."""
        if not isinstance(data, dict):
            raise MappingConfigurationError("Mapping table must be a YAML mapping")

        form_type = str(data.get('form_type') or default_form_type).strip()
        if not form_type:
            raise MappingConfigurationError("Mapping table has no form_type")

        entries = tuple(
            MappingEntry.from_dict(entry)
            for entry in data.get('fields') or []
        )

        return cls(
            form_type=form_type,
            entries=entries,
            display_name=data.get('display_name', form_type),
            settings=MappingSettings.from_dict(data.get('settings')),
        )

    @classmethod
    def from_pairs(
        cls,
        form_type: str,
        pairs: list[tuple[str, str]],
        settings: Optional[MappingSettings] = None
    ) -> 'MappingTable':
        """Build a table from (label, path) pairs."""
        return cls(
            form_type=form_type,
            entries=tuple(MappingEntry(label, path) for label, path in pairs),
            display_name=form_type,
            settings=settings or MappingSettings(),
        )

    def validate(self) -> None:
        """
        Check the table for duplicate labels and path collisions.

        Raises:
            MappingConfigurationError: If the table is malformed
        """
        seen_labels = set()
        for entry in self.entries:
            if entry.label in seen_labels:
                raise MappingConfigurationError(
                    f"Duplicate label '{entry.label}' in mapping table '{self.form_type}'"
                )
            seen_labels.add(entry.label)

        fixed_paths = self.settings.fixed_paths()
        if len(set(fixed_paths)) != len(fixed_paths):
            raise MappingConfigurationError(
                f"Reserved paths {fixed_paths} must be distinct "
                f"in mapping table '{self.form_type}'"
            )

        # Reserved paths hold context values and the variant flag only
        for entry in self.extractable_entries:
            if entry.path in fixed_paths:
                raise MappingConfigurationError(
                    f"Label '{entry.label}' maps to reserved path '{entry.path}' "
                    f"in mapping table '{self.form_type}'",
                    path=entry.path
                )

        paths = {self._path_for(entry) for entry in self.entries}
        paths.update(fixed_paths)

        for path in paths:
            segments = split_path(path)
            for depth in range(1, len(segments)):
                prefix = '.'.join(segments[:depth])
                if prefix in paths:
                    raise MappingConfigurationError(
                        f"Path '{prefix}' is both a value and a parent of '{path}' "
                        f"in mapping table '{self.form_type}'",
                        path=path
                    )

    def _path_for(self, entry: MappingEntry) -> str:
        # Reserved entries are written at their fixed paths, not the table's
        if entry.label == self.settings.subject_id_label:
            return self.settings.subject_id_path
        if entry.label == self.settings.scheduled_date_label:
            return self.settings.scheduled_date_path
        return entry.path

    @property
    def labels(self) -> list[str]:
        return [entry.label for entry in self.entries]

    @property
    def extractable_entries(self) -> list[MappingEntry]:
        """Entries searched for in the document text (reserved ones excluded)."""
        reserved = self.settings.reserved_labels
        return [entry for entry in self.entries if entry.label not in reserved]

    def get_entry(self, label: str) -> Optional[MappingEntry]:
        """Get an entry by its exact label."""
        for entry in self.entries:
            if entry.label == label:
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        """Summary used by the CLI."""
        return {
            'form_type': self.form_type,
            'display_name': self.display_name,
            'field_count': len(self.entries),
            'extractable_count': len(self.extractable_entries),
            'variant_marker': self.settings.variant_marker_label,
        }


class MappingLoader:
    """
    Loads mapping tables from YAML files.

    Usage:
        loader = MappingLoader()
        table = loader.load(Path("config/mappings/male_infertility.yaml"))
        tables = loader.load_directory(Path("config/mappings"))
    """

    def load(self, config_path: Path) -> MappingTable:
        """
        Load one mapping table.

        Args:
            config_path: Path to a YAML mapping file

        Returns:
            Validated MappingTable

        Raises:
            MappingConfigurationError: If the file is unreadable or malformed
        """
        logger.info(f"Loading mapping table from: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load mapping table: {e}")
            raise MappingConfigurationError(
                f"Cannot read mapping table {config_path}: {e}"
            ) from e

        table = MappingTable.from_dict(data, default_form_type=Path(config_path).stem)
        logger.info(f"Loaded {len(table)} mapping entries for '{table.form_type}'")
        return table

    def load_directory(self, directory: Path) -> dict[str, MappingTable]:
        """
        Load every *.yaml / *.yml table in a directory, keyed by form type.

        Raises:
            MappingConfigurationError: If two files declare the same form type
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise MappingConfigurationError(f"Mapping directory not found: {directory}")

        tables: dict[str, MappingTable] = {}
        config_files = sorted(directory.glob('*.yaml')) + sorted(directory.glob('*.yml'))

        for config_path in config_files:
            table = self.load(config_path)
            if table.form_type in tables:
                raise MappingConfigurationError(
                    f"Form type '{table.form_type}' defined more than once in {directory}"
                )
            tables[table.form_type] = table

        if not tables:
            logger.warning(f"No mapping tables found in {directory}")

        return tables


DEFAULT_MAPPINGS_DIR = Path(__file__).resolve().parent.parent / "config" / "mappings"


def load_mapping_tables(directory: Optional[Path] = None) -> dict[str, MappingTable]:
    """Load all mapping tables (defaults to the bundled config/mappings)."""
    return MappingLoader().load_directory(directory or DEFAULT_MAPPINGS_DIR)
