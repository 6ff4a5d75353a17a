import os
from pathlib import Path


def _load_dotenv_if_needed() -> None:
	# Keep pytest runs offline and deterministic
	if os.getenv("PYTEST_CURRENT_TEST"):
		return
	env_path = Path(os.getenv("SITEGEN_ENV_FILE", ".env"))
	if not env_path.exists():
		return
	try:
		lines = env_path.read_text(encoding="utf-8").splitlines()
	except OSError:
		return
	for line in lines:
		s = line.strip()
		if not s or s.startswith("#") or "=" not in s:
			continue
		if s.startswith("export "):
			s = s[len("export "):].lstrip()
		key, val = s.split("=", 1)
		key = key.strip()
		val = val.strip()
		if (val.startswith('"') and val.endswith('"')) or (val.startswith("'") and val.endswith("'")):
			val = val[1:-1]
		# Never overwrite what the process environment already set
		if key and key not in os.environ:
			os.environ[key] = val


_load_dotenv_if_needed()
