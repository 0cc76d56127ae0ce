"""
The duplicate grouping pipeline.

A run is a fixed sequence of four phases over a GroupingState:

  1. exact      - records with the same content hash are grouped
  2. burst      - records taken at the same moment are grouped, minus members
                  whose perceptual hashes disagree with the window's anchor
  3. index      - remaining records are matched perceptually through two
                  BK-trees (aHash, dHash) against every hashed record
  4. safeguard  - groups that phase 3 found to be connected are merged only
                  when their exclusive members actually look alike

Each phase checks that its predecessor has run, so the ordering is enforced
rather than implied by call order. The pipeline touches no files or
database; it is a pure function of the record list it is given.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .. import config
from ..events import EventCallback, PhaseComplete, emit
from ..exceptions import PipelineCancelled, PipelineStateError
from ..models import Confidence, DuplicateGroup, PhotoRecord
from ..ranking import RankingEngine
from .bktree import BKTree
from .confidence import (
    HIGH,
    PROBABLE,
    can_compare,
    combine_confidence,
    confidence_from_hamming,
    perceptual_distance,
)

PHASE_EXACT = 1
PHASE_BURST = 2
PHASE_INDEX = 3
PHASE_SAFEGUARD = 4

PHASE_NAMES = {
    PHASE_EXACT: "exact",
    PHASE_BURST: "burst",
    PHASE_INDEX: "index",
    PHASE_SAFEGUARD: "safeguard",
}


@dataclass(frozen=True)
class MergeCandidate:
    """
    Two groups phase 3 found to be connected. `shared` is the record that
    matched into both (None when a pre-existing member matched directly).
    """
    label_a: int
    label_b: int
    shared: Optional[int]


@dataclass
class GroupingState:
    records: Dict[int, PhotoRecord]
    order: List[int]
    completed_phase: int = 0
    groups: Dict[int, Set[int]] = field(default_factory=dict)
    assignment: Dict[int, int] = field(default_factory=dict)
    confidence: Dict[int, Confidence] = field(default_factory=dict)
    exact_ids: Set[int] = field(default_factory=set)
    candidates: List[MergeCandidate] = field(default_factory=list)
    next_label: int = 1

    @classmethod
    def initial(cls, records: Iterable[PhotoRecord]) -> "GroupingState":
        by_id: Dict[int, PhotoRecord] = {}
        for rec in records:
            if rec.id in by_id:
                logging.warning(f"Duplicate record id {rec.id} in matcher input; keeping the last one.")
            by_id[rec.id] = rec
        return cls(records=by_id, order=sorted(by_id))

    def new_group(self, member_ids: Iterable[int], confidence: Confidence) -> int:
        label = self.next_label
        self.next_label += 1
        self.groups[label] = set()
        self.confidence[label] = confidence
        for rid in member_ids:
            self.join(rid, label)
        return label

    def join(self, record_id: int, label: int, confidence: Optional[Confidence] = None):
        self.groups[label].add(record_id)
        self.assignment[record_id] = label
        if confidence is not None:
            self.confidence[label] = combine_confidence(self.confidence[label], confidence)

    def advance(self, expected_previous: int) -> None:
        if self.completed_phase != expected_previous:
            raise PipelineStateError(
                f"Phase {PHASE_NAMES[expected_previous + 1]} needs phase "
                f"{expected_previous} complete; state is at {self.completed_phase}"
            )
        self.completed_phase = expected_previous + 1


def phase_exact(state: GroupingState) -> GroupingState:
    state.advance(0)

    by_hash: Dict[str, List[int]] = defaultdict(list)
    for rid in state.order:
        by_hash[state.records[rid].content_hash].append(rid)

    for ids in by_hash.values():
        if len(ids) >= 2:
            state.new_group(ids, Confidence.CERTAIN)
            state.exact_ids.update(ids)

    logging.debug(f"Exact phase: {len(state.groups)} content-hash groups.")
    return state


def phase_burst(state: GroupingState, window: timedelta) -> GroupingState:
    state.advance(PHASE_EXACT)

    timed = [
        state.records[rid] for rid in state.order
        if rid not in state.assignment and state.records[rid].capture_time is not None
    ]
    timed.sort(key=lambda r: (r.capture_time, r.id))

    formed = 0
    i = 0
    while i < len(timed):
        anchor_time = timed[i].capture_time
        j = i + 1
        while j < len(timed) and timed[j].capture_time - anchor_time <= window:
            j += 1
        members = timed[i:j]
        i = j

        if len(members) < 2:
            continue
        kept, confidence = _filter_burst(members)
        if len(kept) >= 2:
            state.new_group((r.id for r in kept), confidence)
            formed += 1

    logging.debug(f"Burst phase: {formed} capture-time groups.")
    return state


def _filter_burst(members: Sequence[PhotoRecord]) -> Tuple[List[PhotoRecord], Confidence]:
    """Drops members whose perceptual hashes contradict the window's anchor."""
    anchor = next((m for m in members if m.has_perceptual_hashes), None)
    if anchor is None:
        # Nothing can be disproven; the timestamps are the only evidence.
        return list(members), Confidence.LOW

    kept = [anchor]
    confidence = Confidence.NEAR_CERTAIN
    for member in members:
        if member is anchor:
            continue
        if not can_compare(member, anchor):
            kept.append(member)
            confidence = combine_confidence(confidence, Confidence.LOW)
            continue

        distance = perceptual_distance(member, anchor, PROBABLE)
        if distance is None:
            logging.debug(f"Burst shot {member.path} evicted from group anchored on {anchor.path}.")
            continue
        kept.append(member)
        confidence = combine_confidence(confidence, confidence_from_hamming(distance))

    if len(kept) == 1:
        return kept, Confidence.LOW
    return kept, confidence


def phase_index(state: GroupingState) -> GroupingState:
    state.advance(PHASE_BURST)

    hashed = [state.records[rid] for rid in state.order if state.records[rid].has_perceptual_hashes]

    # Both trees are complete before the first query.
    tree_a = BKTree.build(
        (r.perceptual_codes()[0], r.id) for r in hashed if r.perceptual_codes()[0] is not None
    )
    tree_b = BKTree.build(
        (r.perceptual_codes()[1], r.id) for r in hashed if r.perceptual_codes()[1] is not None
    )

    pre_grouped = set(state.assignment)
    seen_candidates: Set[Tuple[int, int, Optional[int]]] = set()

    for rec in hashed:
        if rec.id in state.exact_ids:
            continue

        for distance, hit_id in _verified_hits(state, rec, tree_a, tree_b):
            own = state.assignment.get(rec.id)
            other = state.assignment.get(hit_id)
            if own is not None and own == other:
                continue

            link = confidence_from_hamming(distance)
            if own is None:
                if other is None:
                    state.new_group((rec.id, hit_id), link)
                else:
                    state.join(rec.id, other, link)
            elif other is None:
                state.join(hit_id, own, link)
            else:
                shared = None if rec.id in pre_grouped else rec.id
                key = (min(own, other), max(own, other), shared)
                if key not in seen_candidates:
                    seen_candidates.add(key)
                    state.candidates.append(MergeCandidate(own, other, shared))

    logging.debug(
        f"Index phase: {len(tree_a)} aHash / {len(tree_b)} dHash entries, "
        f"{len(state.candidates)} merge candidates."
    )
    return state


def _verified_hits(state: GroupingState, rec: PhotoRecord,
                   tree_a: BKTree, tree_b: BKTree) -> List[Tuple[int, int]]:
    """Returns (distance, record_id) pairs passing the consensus rule, closest first."""
    code_a, code_b = rec.perceptual_codes()

    found: Set[int] = set()
    if code_a is not None:
        found.update(owner for owner, _ in tree_a.query_within(code_a, PROBABLE))
    if code_b is not None:
        # A partner lacking an aHash can only match on dHash alone, held to HIGH.
        found.update(owner for owner, _ in tree_b.query_within(code_b, HIGH))

    hits = []
    for owner in found:
        other = state.records[owner]
        if owner == rec.id or other.content_hash == rec.content_hash:
            continue
        distance = perceptual_distance(rec, other, PROBABLE)
        if distance is not None:
            hits.append((distance, owner))
    hits.sort()
    return hits


def phase_safeguard(state: GroupingState) -> GroupingState:
    state.advance(PHASE_INDEX)

    parent = {label: label for label in state.groups}

    def find(label: int) -> int:
        while parent[label] != label:
            parent[label] = parent[parent[label]]
            label = parent[label]
        return label

    merged = rejected = 0
    for cand in state.candidates:
        a, b = find(cand.label_a), find(cand.label_b)
        if a == b:
            continue

        exclusive_a = state.groups[a] - {cand.shared}
        exclusive_b = state.groups[b] - {cand.shared}
        distance = _closest_cross_pair(state, exclusive_a, exclusive_b)
        if distance is None:
            rejected += 1
            logging.debug(f"Refusing to merge groups {a} and {b}: no exclusive members match.")
            continue

        for rid in state.groups.pop(b):
            state.join(rid, a)
        state.confidence[a] = combine_confidence(
            combine_confidence(state.confidence[a], state.confidence.pop(b)),
            confidence_from_hamming(distance),
        )
        parent[b] = a
        merged += 1

    logging.debug(f"Safeguard phase: {merged} merges, {rejected} rejected.")
    return state


def _closest_cross_pair(state: GroupingState, left: Set[int], right: Set[int]) -> Optional[int]:
    best = None
    for x in sorted(left):
        for y in sorted(right):
            distance = perceptual_distance(state.records[x], state.records[y], PROBABLE)
            if distance is not None and (best is None or distance < best):
                best = distance
    return best


def finalize(state: GroupingState) -> List[DuplicateGroup]:
    if state.completed_phase != PHASE_SAFEGUARD:
        raise PipelineStateError("Cannot finalize before the safeguard phase has run")

    clusters = sorted(
        (tuple(sorted(members)), state.confidence[label])
        for label, members in state.groups.items()
        if len(members) >= 2
    )
    return [
        DuplicateGroup(label=idx, members=members, confidence=confidence)
        for idx, (members, confidence) in enumerate(clusters, start=1)
    ]


class MatchingEngine:
    """
    Runs the four phases over one snapshot of the catalog.

    `should_cancel` is polled between phases; returning True abandons the run
    with PipelineCancelled. `on_event` receives a PhaseComplete after each phase.
    """

    def __init__(self,
                 burst_window: Optional[timedelta] = None,
                 on_event: EventCallback = None,
                 should_cancel: Optional[Callable[[], bool]] = None):
        if burst_window is None:
            burst_window = timedelta(seconds=config.BURST_WINDOW_SECONDS)
        if burst_window < timedelta(0):
            raise ValueError("burst_window must not be negative")
        self.burst_window = burst_window
        self.on_event = on_event
        self.should_cancel = should_cancel

    def run(self, records: Iterable[PhotoRecord]) -> List[DuplicateGroup]:
        state = GroupingState.initial(records)
        if not state.order:
            return []

        phases = [
            phase_exact,
            lambda s: phase_burst(s, self.burst_window),
            phase_index,
            phase_safeguard,
        ]
        for number, phase in enumerate(phases, start=1):
            if self.should_cancel is not None and self.should_cancel():
                raise PipelineCancelled(f"Grouping abandoned before the {PHASE_NAMES[number]} phase")
            state = phase(state)
            emit(self.on_event, PhaseComplete(PHASE_NAMES[number], len(state.groups)))

        groups = finalize(state)
        logging.info(f"Found {len(groups)} duplicate groups among {len(state.order)} photos.")
        return groups


def find_duplicates(records: Sequence[PhotoRecord],
                    burst_window: Optional[timedelta] = None,
                    on_event: EventCallback = None,
                    should_cancel: Optional[Callable[[], bool]] = None) -> List[DuplicateGroup]:
    """Groups `records` and elects a canonical member for every group."""
    engine = MatchingEngine(burst_window, on_event, should_cancel)
    groups = engine.run(records)
    return RankingEngine().annotate(groups, records)
