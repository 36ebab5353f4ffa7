"""gws - Google Workspace CLI.

OAuth2 login and credential management for Gmail, Calendar, Drive, Docs,
Sheets, Slides, Tasks, Chat, Forms, Contacts, Groups and Keep.
"""

from gworkspace_cli.__version__ import __version__

__all__ = ["__version__"]
