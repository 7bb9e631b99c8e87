import os
import re
import logging
from typing import Callable, List, Optional, Union

from data_classes import ThemeInfo
from errors import InvalidPath, NoActiveTheme

logger = logging.getLogger(__name__)

HEADER_PATTERN = r"^[ \t/*#@]*{name}:(.*)$"


def _read_header(stylesheet: str, name: str) -> str:
    """reads one header field (e.g. 'Theme Name') from the top of a style.css"""
    try:
        with open(stylesheet, "r", encoding="utf-8", errors="ignore") as f:
            head = f.read(8192)
    except OSError:
        return ""

    match = re.search(HEADER_PATTERN.format(name=re.escape(name)), head, re.MULTILINE | re.IGNORECASE)
    if not match:
        return ""
    return re.sub(r"\s*(?:\*/|\?>).*$", "", match.group(1)).strip()


class TemplateTreeCollector:
    """Enumerates the template files of the active theme, parent theme included"""

    def __init__(
        self,
        content_dir: str,
        active_theme: Union[str, Callable[[], str]],
        extension: str = "php",
        depth: int = 1,
    ):
        self.content_dir = os.path.abspath(content_dir)
        self._active_theme = active_theme
        self.extension = extension.lstrip(".")
        self.depth = depth

    @property
    def themes_dir(self) -> str:
        return os.path.join(self.content_dir, "themes")

    def _active_slug(self) -> str:
        slug = self._active_theme() if callable(self._active_theme) else self._active_theme
        return (slug or "").strip()

    def get_theme(self) -> ThemeInfo:
        """Raises NoActiveTheme if no theme is active or its directory is gone"""
        slug = self._active_slug()
        if not slug or os.path.basename(slug) != slug:
            raise NoActiveTheme("No active theme configured")

        directory = os.path.join(self.themes_dir, slug)
        if not os.path.isdir(directory):
            raise NoActiveTheme(f"Theme directory does not exist: {directory}")

        stylesheet = os.path.join(directory, "style.css")
        name = _read_header(stylesheet, "Theme Name") or slug

        parent_directory = None
        template = _read_header(stylesheet, "Template")
        if template and template != slug and os.path.basename(template) == template:
            candidate = os.path.join(self.themes_dir, template)
            if os.path.isdir(candidate):
                parent_directory = candidate
            else:
                logger.warning(f"Parent theme of {slug} not found: {template}")

        return ThemeInfo(name=name, slug=slug, directory=directory, parent_directory=parent_directory)

    def get_theme_name(self) -> Optional[str]:
        try:
            theme = self.get_theme()
        except NoActiveTheme:
            return None
        return theme.slug or theme.name

    def _walk(self, directory: str) -> List[str]:
        files = []
        base_depth = directory.rstrip(os.sep).count(os.sep)

        for current, dirs, names in os.walk(directory):
            if current.count(os.sep) - base_depth >= self.depth:
                dirs[:] = []
            dirs.sort()
            for name in sorted(names):
                if name.lower().endswith("." + self.extension):
                    files.append(os.path.join(current, name))

        return files

    def strip_content_dir(self, path: str) -> str:
        relative = os.path.relpath(path, self.content_dir)
        return "/" + relative.replace(os.sep, "/")

    def collect(self) -> List[str]:
        """
        Returns the deduplicated template paths relative to the content dir (e.g. /themes/x/index.php).

        Computed from disk on every call, an empty list means no active theme or no template files.
        """
        try:
            theme = self.get_theme()
        except NoActiveTheme as e:
            logger.info(f"Theme scan skipped: {e}")
            return []

        directories = [theme.directory]
        if theme.parent_directory:
            directories.append(theme.parent_directory)

        paths = []
        for directory in directories:
            for path in self._walk(directory):
                stripped = self.strip_content_dir(path)
                if stripped not in paths:
                    paths.append(stripped)

        return paths

    def resolve(self, relative_path: str) -> str:
        """
        Maps a path as returned by collect() back to the file on disk.

        Raises InvalidPath for anything that is not a template file of the active theme.
        """
        if not isinstance(relative_path, str) or not relative_path:
            raise InvalidPath("Empty path")
        if "\x00" in relative_path or "\\" in relative_path or ":" in relative_path:
            raise InvalidPath(f"Invalid characters in path: {relative_path!r}")
        if ".." in relative_path.split("/"):
            raise InvalidPath(f"Path traversal rejected: {relative_path!r}")

        # lexical check, theme dirs may be symlinks
        full_path = os.path.normpath(os.path.join(self.content_dir, relative_path.lstrip("/")))
        if not full_path.startswith(self.content_dir + os.sep):
            raise InvalidPath(f"Path outside the content dir: {relative_path!r}")

        if relative_path not in self.collect():
            raise InvalidPath(f"Not a template file of the active theme: {relative_path!r}")

        return full_path
