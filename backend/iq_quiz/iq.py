from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IqBand:
	min_score_percentage: int
	max_score_percentage: int
	min_iq: int
	max_iq: int
	label: str
	subject_id: Optional[str] = None

	@classmethod
	def from_row(cls, row) -> "IqBand":
		return cls(
			min_score_percentage=row.min_score_percentage,
			max_score_percentage=row.max_score_percentage,
			min_iq=row.min_iq,
			max_iq=row.max_iq,
			label=row.label,
			subject_id=row.subject_id,
		)

	def contains(self, percentage: float) -> bool:
		# Inclusive on both ends; a band with min > max never matches
		return self.min_score_percentage <= percentage <= self.max_score_percentage

	def interpolate(self, percentage: float) -> int:
		score_range = self.max_score_percentage - self.min_score_percentage
		if score_range == 0:
			logger.warning("IQ band %r has a zero-width score range; using its minimum IQ", self.label)
			return self.min_iq
		iq_range = self.max_iq - self.min_iq
		score_pos = percentage - self.min_score_percentage
		return round(self.min_iq + (score_pos / score_range) * iq_range)


@dataclass(frozen=True)
class IqResult:
	iq_score: int
	iq_label: str


def choose_bands(subject_bands: Sequence[IqBand], global_bands: Sequence[IqBand]) -> Sequence[IqBand]:
	# Subject bands fully shadow the global ones; the two sets are never merged
	return subject_bands if subject_bands else global_bands


def _first_match(bands: Iterable[IqBand], percentage: float) -> Optional[IqBand]:
	# sorted() is stable, so equal minima keep the order they were loaded in
	for band in sorted(bands, key=lambda b: b.min_score_percentage):
		if band.contains(percentage):
			return band
	return None


def resolve_from_sets(
	percentage: float,
	subject_bands: Sequence[IqBand],
	global_bands: Sequence[IqBand],
) -> Optional[IqResult]:
	band = _first_match(choose_bands(subject_bands, global_bands), percentage)
	if band is None:
		return None
	logger.debug("percentage %.2f matched IQ band %r", percentage, band.label)
	return IqResult(iq_score=band.interpolate(percentage), iq_label=band.label)


def resolve_iq(percentage: float, subject_id: Optional[str], bands: Sequence[IqBand]) -> Optional[IqResult]:
	"""Map a percentage score onto an admin-configured IQ band.

	Bands for ``subject_id`` are used when there are any, otherwise the
	global bands (``subject_id is None``). Returns None when no band covers
	the percentage, which includes having no bands at all.
	"""
	subject_bands: List[IqBand] = []
	if subject_id is not None:
		subject_bands = [b for b in bands if b.subject_id == subject_id]
	global_bands = [b for b in bands if b.subject_id is None]
	return resolve_from_sets(percentage, subject_bands, global_bands)
