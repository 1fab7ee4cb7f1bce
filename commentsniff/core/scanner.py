import logging
import importlib.metadata
from pathlib import Path
from typing import List, Dict, Any, Iterator, Optional
from concurrent.futures import ThreadPoolExecutor, as_completed
from rich.progress import Progress

from commentsniff.config.settings import load_config, validate_config
from commentsniff.core.comments import extract_comments, style_for

log = logging.getLogger(__name__)

RULES_ENTRY_POINT_GROUP = "commentsniff.rules"


def _load_rule_registry() -> Dict[str, Any]:
    """
    Dynamically discovers and loads all registered rule plugins.
    """
    registry = {}
    for entry_point in importlib.metadata.entry_points(group=RULES_ENTRY_POINT_GROUP):
        registry[entry_point.name] = entry_point.load()
    return registry


def _parse_size(size_str: str) -> int:
    """Parses a size string (e.g., '5MB', '100KB') into bytes."""
    size_str = str(size_str).upper().strip()
    units = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}
    try:
        if size_str[-2:] in units:
            return int(size_str[:-2]) * units[size_str[-2:]]
        elif size_str[-1:] in units:
            return int(size_str[:-1]) * units[size_str[-1]]
        return int(size_str)
    except ValueError:
        log.warning("Could not parse max file size '%s'; no size limit applied.", size_str)
    return 0


class FileScanner:
    """
    Orchestrates the scanning of a given path for discouraged comment keywords.
    """

    def __init__(self, root_path: str, config: Optional[Dict[str, Any]] = None):
        """
        Initializes the scanner.

        Args:
            root_path (str): The root directory or file path to scan.
            config (Optional[Dict[str, Any]]): A configuration dictionary. If not
                                                provided, it will be loaded automatically.

        Raises:
            ConfigError: If the configuration is not usable.
        """
        self.root_path = Path(root_path)
        self.config = config if config is not None else load_config()
        validate_config(self.config)

        # Dynamically initialize rules discovered via entry points
        self.rules = []
        rule_registry = _load_rule_registry()
        rules_config = self.config.get("rules", {})
        detectors_config = rules_config.get("detectors", {})

        for name, config_block in detectors_config.items():
            if not config_block.get("enabled"):
                continue
            if name not in rule_registry:
                log.warning("No rule registered under '%s'; skipping it.", name)
                continue
            RuleClass = rule_registry[name]
            # Prepare arguments for the rule's constructor by removing 'enabled'
            kwargs = {k: v for k, v in config_block.items() if k != "enabled"}
            self.rules.append((name, RuleClass(**kwargs)))

        self.excluded_paths = rules_config.get("excluded_paths", [])
        self.max_file_size = _parse_size(rules_config.get("max_file_size", "0"))

    def _is_excluded(self, path: Path) -> bool:
        """Checks if a file should be excluded from the scan."""
        for pattern in self.excluded_paths:
            if path.match(pattern):
                return True

        if self.max_file_size > 0 and path.stat().st_size > self.max_file_size:
            log.debug("Skipping %s: larger than %d bytes", path, self.max_file_size)
            return True

        return False

    def _find_files_to_scan(self) -> Iterator[Path]:
        """Yields all non-excluded files with a known comment syntax."""
        if self.root_path.is_file():
            candidates = [self.root_path]
        else:
            candidates = (p for p in sorted(self.root_path.rglob("*")) if p.is_file())

        for file_path in candidates:
            if style_for(file_path.suffix) is None:
                continue
            if not self._is_excluded(file_path):
                yield file_path

    def discover_files(self) -> int:
        """Counts the files a scan would visit."""
        return sum(1 for _ in self._find_files_to_scan())

    def _process_file(self, file_path: Path) -> List[Dict[str, Any]]:
        """
        Processes a single file: extracts its comments and runs every rule on them.
        This method is designed to be run in a separate thread.
        """
        try:
            with file_path.open("r", encoding="utf-8", errors="replace") as f:
                content = f.read()
        except OSError as e:
            log.warning("Could not read %s: %s", file_path, e)
            return []

        comments = extract_comments(content, file_path.suffix)
        file_findings = []
        for rule_name, rule in self.rules:
            for violation in rule.detect(comments):
                file_findings.append({
                    "file": str(file_path.resolve()),
                    "line": violation.line,
                    "column": violation.column,
                    "rule": rule_name,
                    "type": violation.type,
                    "keyword": violation.keyword,
                    "message": violation.render(),
                })
        return file_findings

    def scan(self, progress: Optional[Progress] = None) -> List[Dict[str, Any]]:
        """
        Executes the full scan process.

        1. Finds all relevant files.
        2. Extracts the comments of each file.
        3. Runs the enabled rules over those comments.
        4. Collects and returns the findings, ordered by file and position.

        Args:
            progress (Optional[Progress]): A rich Progress object to update during the scan.
        """
        findings = []
        files_to_scan = list(self._find_files_to_scan())
        log.debug("Scanning %d file(s) under %s", len(files_to_scan), self.root_path)

        task_id = None
        if progress:
            task_id = progress.add_task("Scanning files...", total=len(files_to_scan))

        # Rule instances are shared by all worker threads.
        with ThreadPoolExecutor() as executor:
            future_to_file = {executor.submit(self._process_file, file_path): file_path for file_path in files_to_scan}

            for future in as_completed(future_to_file):
                if progress and task_id is not None:
                    progress.update(task_id, advance=1)
                try:
                    findings.extend(future.result())
                except Exception:
                    log.exception("Failed to scan %s", future_to_file[future])

        findings.sort(key=lambda f: (f["file"], f["line"], f["column"], f["rule"]))
        return findings
