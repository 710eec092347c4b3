from pathlib import Path
from typing import Iterable, List, Optional, Tuple


class ModuleResolver:
    """
    Resolves import strings to dotted module paths of the loaded program.
    Anything that does not resolve to a loaded module is external.
    """

    def __init__(self, project_root: Path, modules: Iterable[str] = ()):
        self.root = project_root.resolve()
        self.modules = set(modules)
        # src-layout projects import from inside src/
        self.search_roots: List[Path] = [self.root]
        src_dir = self.root / 'src'
        if src_dir.is_dir():
            self.search_roots.insert(0, src_dir)

    # -------------------------------------------------------------------------
    # File -> module path
    # -------------------------------------------------------------------------

    def module_path_for(self, file_path: Path) -> Optional[Tuple[str, bool]]:
        """
        Computes the dotted module path of a source file.

        Returns:
            (module_path, is_package_init) or None when the file sits outside
            every search root.
        """
        file_path = file_path.resolve()
        for root in self.search_roots:
            try:
                rel = file_path.relative_to(root)
            except ValueError:
                continue
            parts = list(rel.with_suffix('').parts)
            is_init = parts[-1] == '__init__'
            if is_init:
                parts = parts[:-1]
            if not parts:
                # __init__.py at the search root itself
                parts = [root.name]
            if not all(p.isidentifier() for p in parts):
                return None
            return '.'.join(parts), is_init
        return None

    # -------------------------------------------------------------------------
    # Import string -> module path
    # -------------------------------------------------------------------------

    def base_package(self, current_module: str, is_package_init: bool, level: int) -> Optional[str]:
        """
        Package a relative import with ``level`` dots is anchored at.
        1 dot = the current package, 2 dots = its parent, etc.
        """
        parts = current_module.split('.')
        if not is_package_init:
            parts = parts[:-1]
        drop = level - 1
        if drop > len(parts):
            return None
        if drop:
            parts = parts[:-drop]
        return '.'.join(parts)

    def absolute_name(self, current_module: str, is_package_init: bool, import_string: str) -> Optional[str]:
        """
        Turns a possibly relative import string into an absolute dotted name,
        whether or not the module is loaded.
        """
        if not import_string.startswith('.'):
            return import_string

        dots = len(import_string) - len(import_string.lstrip('.'))
        module_part = import_string[dots:]
        base = self.base_package(current_module, is_package_init, dots)
        if base is None:
            return None
        if not module_part:
            return base or None
        return f"{base}.{module_part}" if base else module_part

    def resolve_module(self, current_module: str, is_package_init: bool, import_string: str) -> Optional[str]:
        """
        Determines the loaded module an import string refers to.

        Returns:
            Dotted module path, or None if the module is not part of the program.
        """
        name = self.absolute_name(current_module, is_package_init, import_string)
        if name and name in self.modules:
            return name
        return None

    def is_loaded(self, module: Optional[str]) -> bool:
        return module is not None and module in self.modules
