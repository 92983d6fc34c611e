# DO NOT MODIFY THIS FILE
__version__ = "0.1.0"
