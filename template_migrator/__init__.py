"""Service report template migration between platform orgs"""

__version__ = "1.0.0"
