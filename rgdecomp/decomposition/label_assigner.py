"""
Label Assigner
==============
Turns one match plus its extracted fragments into candidate label
assignments.

Rules per core atom ("site") holding ``k`` labeled points, an unlabeled
capacity ``u`` and ``n`` fragments; every distinct ordering of the
fragments is tried:

* the first ``min(n, k)`` fragments go to the labeled points in label
  order; a labeled point left without a fragment gets the hydrogen
  terminator, or the match yields nothing if the matched atom carries no
  hydrogen;
* ``u`` is the number of explicit unlabeled points on the atom, else 1
  when substituents may leave the core anywhere, else 0;
* leftovers merge into the last labeled fragment when ``u == 0``; with
  multiple R-groups on unlabeled points allowed every leftover gets its
  own slot; otherwise the first ``u - 1`` leftovers take one slot each and
  the rest merge into the last slot.

A fragment bonded to several core atoms (a ring bridging them) lives at
the first of those atoms that carries a labeled point, and also serves a
labeled point left empty on any other atom it is bonded to.

Sites combine by cartesian product.  Everything is generated lazily and
candidates with identical content are reported once.

``placement_penalty`` counts substituents sitting on positions the core
does not declare plus user labels capped with hydrogen; the decomposer
only keeps the candidates of a molecule with the lowest penalty.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from rgdecomp.chem.fragment_extractor import has_hydrogen_capacity
from rgdecomp.common.constants import DecompositionLimits
from rgdecomp.models import (
    Core,
    Fragment,
    LabelAssignment,
    Match,
    RGroupDecompositionParameters,
    RLabel,
    TargetMolecule,
)

__all__ = ["assign", "site_options", "placement_penalty"]

logger = logging.getLogger(__name__)

SiteOption = Tuple[Tuple[RLabel, Fragment], ...]


def _merge_all(fragments: Sequence[Fragment]) -> Fragment:
    merged = fragments[0]
    for frag in fragments[1:]:
        merged = merged.merge(frag)
    return merged


def _unlabeled_capacity(core: Core, atom_idx: int, params: RGroupDecompositionParameters) -> int:
    explicit = core.unlabeled_count_at(atom_idx)
    if explicit:
        return explicit
    return 0 if params.only_match_at_rgroups else 1


def _home_sites(
    core: Core,
    sites: Dict[int, List[Fragment]],
) -> Tuple[Dict[int, List[Fragment]], Dict[int, List[Fragment]]]:
    """Fragments per home atom, and the bridging fragments each other atom is bonded to."""
    homes: Dict[int, List[Fragment]] = defaultdict(list)
    bridges: Dict[int, List[Fragment]] = defaultdict(list)
    for atom_idx in sorted(sites):
        for frag in sites[atom_idx]:
            touched = sorted({c.core_atom for c in frag.cut_bonds})
            labeled = [a for a in touched if core.labels_at(a)]
            home = labeled[0] if labeled else atom_idx
            homes[home].append(frag)
            for other in touched:
                if other != home:
                    bridges[other].append(frag)
    return dict(homes), dict(bridges)


def _option_for_ordering(
    core: Core,
    atom_idx: int,
    ordering: Sequence[Fragment],
    bridges: Sequence[Fragment],
    hydrogen: Optional[Fragment],
    params: RGroupDecompositionParameters,
) -> Optional[SiteOption]:
    labels = core.labels_at(atom_idx)
    capacity = _unlabeled_capacity(core, atom_idx, params)
    k = len(labels)

    spare = list(bridges)
    claimed: List[Tuple[RLabel, Fragment]] = []
    for i, number in enumerate(labels):
        if i < len(ordering):
            claimed.append((RLabel.user(number), ordering[i]))
        elif spare:
            claimed.append((RLabel.user(number), spare.pop(0)))
        elif hydrogen is not None:
            claimed.append((RLabel.user(number), hydrogen))
        else:
            return None

    rest = list(ordering[k:])
    if not rest:
        return tuple(claimed)

    if capacity == 0:
        if not claimed:
            return None
        label, frag = claimed[-1]
        claimed[-1] = (label, _merge_all([frag] + rest))
    elif params.allow_multiple_rgroups_on_unlabelled:
        for slot, frag in enumerate(rest):
            claimed.append((RLabel.unlabeled(core.core_id, atom_idx, slot), frag))
    else:
        for slot in range(min(capacity, len(rest))):
            if slot == capacity - 1:
                frag = _merge_all(rest[slot:])
            else:
                frag = rest[slot]
            claimed.append((RLabel.unlabeled(core.core_id, atom_idx, slot), frag))
    return tuple(claimed)


def site_options(
    core: Core,
    target: TargetMolecule,
    match: Match,
    atom_idx: int,
    fragments: Sequence[Fragment],
    params: RGroupDecompositionParameters,
    bridges: Sequence[Fragment] = (),
) -> List[SiteOption]:
    """Distinct ways of labelling the fragments hanging off one core atom.

    *bridges* are fragments homed on another core atom but also bonded
    to this one; they fill labeled points no own fragment claims.
    """
    hydrogen: Optional[Fragment] = None
    if has_hydrogen_capacity(target, match, atom_idx):
        hydrogen = Fragment.hydrogen(match.variant)

    options: List[SiteOption] = []
    seen: Set[Tuple] = set()
    orderings = itertools.islice(
        itertools.permutations(fragments),
        DecompositionLimits.MAX_SITE_ORDERINGS,
    )
    for ordering in orderings:
        option = _option_for_ordering(core, atom_idx, ordering, bridges, hydrogen, params)
        if option is None:
            continue
        key = tuple((label, frag.smiles) for label, frag in option)
        if key in seen:
            continue
        seen.add(key)
        options.append(option)
    return options


def assign(
    core: Core,
    target: TargetMolecule,
    match: Match,
    sites: Dict[int, List[Fragment]],
    params: RGroupDecompositionParameters,
    molecule_index: int = 0,
) -> Iterator[LabelAssignment]:
    """Yield the candidate label assignments of one match.

    Every labeled attachment point of *core* is a key of each yielded
    assignment.  Nothing is yielded when a labeled point can hold neither
    a fragment nor a hydrogen.
    """
    homes, bridges = _home_sites(core, sites)
    atoms = sorted(set(core.attachment_atoms) | set(homes))
    per_site: List[List[SiteOption]] = []
    for atom_idx in atoms:
        options = site_options(
            core, target, match, atom_idx,
            homes.get(atom_idx, []), params, bridges.get(atom_idx, ()),
        )
        if not options:
            logger.debug(
                "%s: core %d atom %d cannot be labelled for this match",
                target.smiles, core.core_id, atom_idx,
            )
            return
        per_site.append(options)

    for combination in itertools.product(*per_site):
        pairs = [pair for option in combination for pair in option]
        pairs.sort(key=lambda pair: pair[0].sort_key())
        yield LabelAssignment(
            molecule_index=molecule_index,
            core_id=core.core_id,
            match=match,
            fragments=tuple(pairs),
        )


def placement_penalty(core: Core, assignment: LabelAssignment) -> int:
    """Substituents off the declared points plus hydrogen-capped user labels."""
    penalty = 0
    for label, fragment in assignment.fragments:
        if label.is_user:
            if fragment.is_hydrogen:
                penalty += 1
        elif not fragment.is_hydrogen and label.slot >= core.unlabeled_count_at(label.core_atom):
            penalty += 1
    return penalty
