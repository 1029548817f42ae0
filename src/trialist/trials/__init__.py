"""Trial window resolution, eligibility and normalization.

Modules:

  resolver: Pairs setup and start surveys into ``Trial`` windows.
  eligibility: Selects the completed trials a run should process.
  normalizer: Converts daily survey responses into a ``NormalizedDocument``.

"""

from .resolver import resolve_trials  # noqa: F401
from .eligibility import select_trials  # noqa: F401
from .normalizer import normalize_trial  # noqa: F401
