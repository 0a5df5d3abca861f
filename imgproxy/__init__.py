from pathlib import Path

PACKAGE_ROOT = Path(__file__).parent.resolve()


def get_version() -> str:
  return PACKAGE_ROOT.with_name('VERSION').read_text(encoding='utf-8').strip()


version = get_version()
