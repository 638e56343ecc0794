"""Command-line tools for Knowlex.

- ``python -m knowlex.cli upload --project ID FILE... [--wait]`` -- upload
  files and optionally wait until they are processed
- ``python -m knowlex.cli list --project ID`` -- show a project's files
- ``python -m knowlex.cli retry FILE_ID [--wait]`` -- re-process a failed file
- ``python -m knowlex.cli delete FILE_ID`` -- delete a file and its chunks
- ``python -m knowlex.cli process`` -- process every pending file, then exit
"""
