# =============================================================================
# GIS Layer Pipeline Shared Libraries
# =============================================================================
# Shared libraries for the layer import/export pipelines.
# See individual sub-packages for detailed documentation.
# =============================================================================

"""
GIS layer pipeline shared libraries.

Sub-packages:
- models: Pydantic models, settings and channel messages
- spatial_utils: format detection, coordinate normalization, geometry checks
- parsers: record parsers per source format
- routing: business routing and downstream batching
- writers: export writers per target format
"""

__version__ = "0.1.0"
