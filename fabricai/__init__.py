"""FabricAI sofa visualizer: Gemini gateway, catalog and gallery service."""

__version__ = "1.0.0"
