from pathlib import Path
from typing import Iterable, Self

from imgproxy.originrequest.params import normalize_url

BLACKLIST_FILE = Path(__file__).with_name('blacklist.txt')


def read_entries(text: str) -> list[str]:
  entries = []
  for line in text.splitlines():
    line = line.strip()
    if line != '' and not line.startswith('#'):
      entries.append(line)
  return entries


class Blacklist:
  urls: frozenset[str]

  def __init__(self, urls: Iterable[str]):
    normalized = set()
    for url in urls:
      try:
        normalized.add(normalize_url(url))
      except ValueError:
        normalized.add(url)
    self.urls = frozenset(normalized)

  @classmethod
  def load(cls, extra: str = '') -> Self:
    return cls(read_entries(BLACKLIST_FILE.read_text(encoding='utf-8')) + extra.split())

  def __contains__(self, url: str) -> bool:
    return url in self.urls

  def __len__(self) -> int:
    return len(self.urls)
