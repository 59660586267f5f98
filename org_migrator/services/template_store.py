"""Registry of migration templates."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import ConfigurationError
from ..models.template import MigrationTemplate

logger = logging.getLogger(__name__)


class TemplateStore:
    """
    Holds immutable migration templates keyed by id.

    Template ids are globally unique: registering a second definition under
    an existing id is rejected rather than replacing the first.
    """

    def __init__(self, templates_dir: Optional[str] = None):
        """
        Initialize the template store.

        Args:
            templates_dir: Directory containing template JSON files
        """
        self._templates: Dict[str, MigrationTemplate] = {}

        if templates_dir:
            self.load_from_directory(templates_dir)

    def load_from_directory(self, directory: str) -> int:
        """
        Load all template files from a directory.

        Malformed files are logged and skipped; a duplicate id is an error.

        Args:
            directory: Path to directory containing template JSON files

        Returns:
            Number of templates loaded
        """
        loaded = 0
        path = Path(directory)

        if not path.exists():
            logger.warning(f"Template directory does not exist: {directory}")
            return 0

        for file_path in sorted(path.glob("**/*.json")):
            try:
                template = MigrationTemplate.from_json_file(str(file_path))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Failed to load template from {file_path}: {e}")
                continue

            self.register(template)
            loaded += 1
            logger.info(f"Loaded template: {template.id} from {file_path}")

        return loaded

    def register(self, template: MigrationTemplate) -> None:
        """
        Register a template.

        Raises:
            ConfigurationError: If the id is taken or the template is structurally invalid
        """
        if template.id in self._templates:
            raise ConfigurationError(f"Template '{template.id}' is already registered")

        step_names = [s.step_name for s in template.etl_steps]
        duplicates = sorted({n for n in step_names if step_names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Template '{template.id}' has duplicate steps: {', '.join(duplicates)}")

        self._templates[template.id] = template

    def get(self, template_id: str) -> MigrationTemplate:
        """
        Get a template by id.

        Raises:
            ConfigurationError: If no template has that id
        """
        template = self._templates.get(template_id)
        if template is None:
            raise ConfigurationError(f"Unknown template: {template_id}")
        return template

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def list_templates(self) -> List[str]:
        """List all registered template ids."""
        return sorted(self._templates.keys())
