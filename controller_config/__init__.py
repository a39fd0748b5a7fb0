"""
controller_config -- YAML configuration entrypoint.

Responsibility:
    Provides ``load_bundle()``, the way callers obtain statement templates,
    account mappings, budget drivers and rules from a fragment directory.

Architecture position:
    Configuration -- sits above ``controller_kernel`` and
    ``controller_engines``.  The kernel and engines MUST NEVER import from
    ``controller_config``.

Failure modes:
    - ``AssemblyError`` -- missing or malformed fragments.
    - ``ConfigurationError`` subclasses -- structural problems found by
      validation (statement cycles, orphan parents, mapping cycles).

Audit relevance:
    Every successful ``load_bundle()`` call emits a
    ``CONTROLLER_CONFIG_TRACE`` log entry with the bundle id, version,
    checksum and entry counts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from controller_config.assembler import AssemblyError, ConfigBundle, assemble_from_directory
from controller_engines.assumption_mapper import check_mapping_graph
from controller_engines.statement_tree import validate_definitions

_logger = logging.getLogger("controller_kernel.config")


def load_bundle(fragment_dir: Path | str, validate: bool = True) -> ConfigBundle:
    """
    Assemble and (by default) structurally validate a fragment directory.

    Raises:
        AssemblyError: If fragments are missing or malformed.
        ConfigurationError: If ``validate`` and the statement hierarchy or
            the mapping graph is invalid.
    """
    bundle = assemble_from_directory(Path(fragment_dir))
    if validate:
        validate_definitions(bundle.statement_lines)
        check_mapping_graph(bundle.budget_mappings, bundle.assumptions)

    _logger.info(
        "CONTROLLER_CONFIG_TRACE",
        extra={
            "trace_type": "CONTROLLER_CONFIG_TRACE",
            "bundle_id": bundle.bundle_id,
            "version": bundle.version,
            "checksum": bundle.checksum,
            "line_count": len(bundle.statement_lines),
            "mapping_count": len(bundle.account_mappings),
            "rule_count": len(bundle.rules),
        },
    )
    return bundle


__all__ = [
    "AssemblyError",
    "ConfigBundle",
    "assemble_from_directory",
    "load_bundle",
]
