"""File helpers shared by the session and checkpoint stores."""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

_path_locks: dict[Path, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def path_lock(path: Path) -> threading.RLock:
	"""Process-wide lock for one file path, shared by every store instance."""
	key = Path(path).resolve()
	with _path_locks_guard:
		lock = _path_locks.get(key)
		if lock is None:
			lock = threading.RLock()
			_path_locks[key] = lock
		return lock


def atomic_write_json(path: Path, data: Any) -> None:
	"""Write JSON so that readers see either the old or the new document, never a mix.

	The payload goes to a temp file in the same directory, is fsynced, then
	renamed over the target.
	"""
	path = Path(path)
	path.parent.mkdir(parents=True, exist_ok=True)

	fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=path.parent)
	try:
		with os.fdopen(fd, 'w') as f:
			json.dump(data, f, indent=2)
			f.flush()
			os.fsync(f.fileno())
		os.replace(tmp_name, path)
	except BaseException:
		try:
			os.unlink(tmp_name)
		except FileNotFoundError:
			pass
		raise


def read_json(path: Path) -> Any:
	with open(path, 'r') as f:
		return json.load(f)
