"""gitlab-move

Moves many repositories into one GitLab group through a resumable pipeline:
check destination, mirror source, create project, update metadata, push the
mirror and verify with a fresh clone.
"""

__version__ = '0.1.0'
