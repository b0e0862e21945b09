"""
Exception classes for glyphseg.

All glyphseg exceptions inherit from GlyphSegError,
making it easy to catch all library errors.

Example:
    >>> try:
    ...     engine.import_training_data(text, strict=True)
    ... except MalformedTrainingData as e:
    ...     print(f"Rejected training data: {e}")
"""


class GlyphSegError(Exception):
    """
    Base exception for all glyphseg errors.

    Catch this to handle any glyphseg-specific error.
    """

    pass


class RenderTargetUnavailable(GlyphSegError):
    """
    Raised when a pixel region cannot be produced for a candidate.

    Happens when a bounding box is empty or lies outside the source image.
    The engine catches this per candidate and keeps the unrefined box.
    """

    pass


class EmptyInput(GlyphSegError):
    """
    Raised when an operation needs pixels or samples and got none.

    Feature extraction raises it for zero-size buffers. Empty candidate
    lists are not an error: the engine returns an empty result.
    """

    pass


class MalformedTrainingData(GlyphSegError):
    """
    Raised when serialized training data cannot be parsed or validated.

    Example:
        >>> engine.import_training_data("not json", strict=True)
        MalformedTrainingData: Training data is not valid JSON: ...
    """

    pass


class ConfigurationError(GlyphSegError):
    """
    Raised for invalid configuration.

    Example:
        >>> EngineConfig(kmeans_clusters=0)
        ConfigurationError: kmeans_clusters must be >= 1, got 0
    """

    pass
