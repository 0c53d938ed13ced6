"""
Core Generation Package.

Modules:
    - ``scanner``: Module package discovery and scan-time snapshots.
    - ``extractor``: Annotated class and method signature extraction.
    - ``synthesizer``: Protocol planning, type resolution and rendering.
    - ``staleness``: Timestamp-based regeneration policy.
    - ``records``: Generation records kept in module packages.
    - ``manifest``: Consumer ``pyproject.toml`` creation and dependency edits.
    - ``package_manager``: Atomic consumer package writes.
    - ``verifier``: Type-check runner for generated packages.
    - ``pipeline``: Per-run coordination and reporting.
"""
