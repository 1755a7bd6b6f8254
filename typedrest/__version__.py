__title__ = "typedrest"
__description__ = "Typed HTTP and JSON REST client with pluggable credential handlers."
__version__ = "1.0.0"
