"""Settings library for the application configuration.

Provides:
    - Schema validation and enforcement for the settings.json structure.
    - Loading, saving, reverting, and reloading settings sections.
    - Application paths (settings file, local store database) under the Qt app data directory.
"""

import json
import logging
import pathlib
import shutil
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'ChaplaincyTracker'

DEFAULT_LOCK_WINDOW: float = 8.0

SETTINGS_SCHEMA: Dict[str, Any] = {
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'endpoint': {'type': str, 'required': True},
            'lock_window': {'type': (int, float), 'required': True, 'min': 0},
            'pin_endpoint': {'type': bool, 'required': True},
        }
    },
    'admin': {
        'type': dict,
        'required': True,
        'item_schema': {
            'id': {'type': str, 'required': True, 'non_empty': True},
            'name': {'type': str, 'required': True, 'non_empty': True},
            'email': {'type': str, 'required': True, 'non_empty': True},
            'password': {'type': str, 'required': True},
        }
    },
    'report': {
        'type': dict,
        'required': False,
        'item_schema': {
            'title': {'type': str, 'required': True},
            'subtitle': {'type': str, 'required': True},
        }
    },
}


def _validate_section(name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate a single settings section against its item schema.

    Args:
        name: Section name, used in error messages.
        section: The section data.
        item_schema: Mapping of field names to their type and constraint specs.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a required field is missing or violates a constraint.
    """
    logging.debug(f'Validating "{name}" section.')
    for field, specs in item_schema.items():
        if field not in section:
            if specs['required']:
                msg = f'Section "{name}" missing "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section[field]
        # bool is an int subclass; never accept it for numeric fields
        if isinstance(value, bool) and specs['type'] is not bool:
            msg = f'Section "{name}" field "{field}" must be {specs["type"]}, got bool.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, specs['type']):
            msg = f'Section "{name}" field "{field}" must be {specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)
        if 'min' in specs and value < specs['min']:
            msg = f'Section "{name}" field "{field}" must be >= {specs["min"]}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)
        if specs.get('non_empty') and not value.strip():
            msg = f'Section "{name}" field "{field}" must not be empty.'
            logging.error(msg)
            raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure the default settings template is in place.

    Paths resolve against ``QStandardPaths.AppDataLocation`` so tests can redirect
    everything with ``QStandardPaths.setTestModeEnabled(True)``.
    """

    def __init__(self) -> None:
        """Set up application paths and ensure required directories and templates exist."""
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.settings_template: pathlib.Path = self.template_dir / 'settings.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.settings_path: pathlib.Path = self.config_dir / 'settings.json'
        self.db_path: pathlib.Path = self.db_dir / 'store.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists and prepare the configuration directories and files.

        Raises:
            FileNotFoundError: If the template directory or file is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.settings_template.exists():
            msg = f'Missing settings template: {self.settings_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

        if not self.db_dir.exists():
            logging.debug(f'Creating db directory: {self.db_dir}')
            self.db_dir.mkdir(parents=True, exist_ok=True)

        if not self.settings_path.exists():
            logging.debug(f'Copying default settings from template to {self.settings_path}')
            shutil.copy(self.settings_template, self.settings_path)

    def revert_settings_to_template(self) -> None:
        """Restore settings.json from the default template file.

        Raises:
            FileNotFoundError: If the settings template file is missing.
        """
        logging.debug(f'Reverting settings to template: {self.settings_template}')
        if not self.settings_template.exists():
            msg: str = f'Settings template not found: {self.settings_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.settings_template, self.settings_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save settings.json sections.
    """

    def __init__(self, settings_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the settings data.

        Args:
            settings_path: Optional path to a custom settings.json file.
        """
        super().__init__()

        self.settings_path: pathlib.Path = pathlib.Path(settings_path) if settings_path else self.settings_path

        self.settings_data: Dict[str, Any] = {k: {} for k in SETTINGS_SCHEMA}
        self.load_settings()

    def load_settings(self) -> Dict[str, Any]:
        """Load settings.json from disk and validate against the schema.

        Returns:
            The loaded settings dictionary.

        Raises:
            status.SettingsNotFoundException: If the settings file is missing.
            status.SettingsInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading settings from "{self.settings_path}"')
        if not self.settings_path.exists():
            raise status.SettingsNotFoundException

        try:
            with self.settings_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_settings_data(data)
        except status.SettingsInvalidException:
            raise
        except (ValueError, TypeError) as ex:
            raise status.SettingsInvalidException(str(ex)) from ex

        self.settings_data = data
        return self.settings_data

    def validate_settings_data(self, data: Dict[str, Any] = None) -> None:
        """Validate settings data against SETTINGS_SCHEMA.

        Args:
            data (dict, optional): Settings data to validate. Defaults to self.settings_data.

        Raises:
            status.SettingsInvalidException: If a required section is missing or has the wrong type.
            TypeError, ValueError: If a field fails validation.
        """
        if data is None:
            data = self.settings_data
        if not isinstance(data, dict):
            raise status.SettingsInvalidException('Settings must be a JSON object.')

        logging.debug('Validating settings data against schema.')
        for field, specs in SETTINGS_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.SettingsInvalidException(f'Missing required section: {field}')

            if field not in data:
                continue

            if not isinstance(data[field], specs['type']):
                raise status.SettingsInvalidException(
                    f'Section "{field}" must be {specs["type"]}, got {type(data[field])}.'
                )
            _validate_section(field, data[field], specs['item_schema'])

        logging.debug('Settings data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a settings section.

        Args:
            section_name: Section name, a key of SETTINGS_SCHEMA.

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is unknown.
        """
        if section_name not in SETTINGS_SCHEMA:
            raise KeyError(f'Unknown settings section: "{section_name}"')
        return dict(self.settings_data.get(section_name, {}))

    def value(self, section_name: str, key: str, default: Any = None) -> Any:
        """Return a single value from a section, or ``default`` when absent."""
        return self.get_section(section_name).get(key, default)

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a settings section.

        The previous section data is restored if validation fails.

        Args:
            section_name: Section to update.
            new_data: New data dict for the section.

        Raises:
            ValueError: If section_name is unknown or the data fails validation.
            TypeError: If the data has the wrong types.
        """
        from ..core.signals import signals

        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        previous = self.settings_data.get(section_name)
        self.settings_data[section_name] = new_data
        try:
            self.validate_settings_data()
        except (ValueError, TypeError, status.SettingsInvalidException) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            if previous is None:
                self.settings_data.pop(section_name, None)
            else:
                self.settings_data[section_name] = previous
            raise

        self.save_section(section_name)
        signals.settingsSectionChanged.emit(section_name)

    def reload_section(self, section_name: str) -> None:
        """Reload a section from disk and emit a change signal.

        Raises:
            ValueError: If section_name is unknown.
            status.SettingsInvalidException: If the file on disk is invalid.
        """
        from ..core.signals import signals

        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for reload: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        logging.debug(f'Reloading section "{section_name}" from disk.')
        with self.settings_path.open('r', encoding='utf-8') as f:
            data: Dict[str, Any] = json.load(f)
        self.validate_settings_data(data=data)
        if section_name in data:
            self.settings_data[section_name] = data[section_name]
        signals.settingsSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a section to its template default and save.

        Raises:
            ValueError: If section_name is unknown or absent from the template.
        """
        from ..core.signals import signals

        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.settings_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.settings_data[section_name] = template_data[section_name]
        self.save_section(section_name)
        signals.settingsSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single section, leaving the other sections on disk untouched.

        Raises:
            ValueError: If section_name is unknown.
        """
        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        original_data: Dict[str, Any] = {}
        if self.settings_path.exists():
            with self.settings_path.open('r', encoding='utf-8') as f:
                original_data = json.load(f)

        new_data: Dict[str, Any] = dict(original_data)
        new_data[section_name] = self.settings_data[section_name]

        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)

    @property
    def sections(self) -> List[str]:
        return list(SETTINGS_SCHEMA)


settings: SettingsAPI = SettingsAPI()
