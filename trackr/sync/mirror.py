"""Local copy of the remote log for human inspection."""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalMirror:
    """Overwrites a local file with the full log after every append.

    Purely informational: failures are logged and never fail a sync.
    """

    def __init__(self, path: str | Path = "~/git.trackr.log"):
        self.path = Path(path).expanduser()

    def write(self, content: str) -> bool:
        """Replace the mirror with the given content.

        Returns:
            True if the file was written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}."
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning(f"Could not update local mirror {self.path}: {e}")
            return False

        logger.debug(f"Local mirror updated at {self.path}")
        return True
