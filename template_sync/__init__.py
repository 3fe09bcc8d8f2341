"""Template Sync — push local template edits to a remote template editor.

Watches a local template file and replays a request captured from a
browser session every time it is saved, optionally serving the rendered
result for live preview.
"""

__version__ = "1.0.0"
__app_name__ = "Template Sync"
