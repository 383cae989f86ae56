"""
Chemistry layer for rgdecomp.

RDKit-based building blocks of a decomposition run:

- mol_parser:          SMILES / SMARTS / molfile parsing with LRU caching
- core_registry:       core definitions and attachment-point detection
- tautomers:           tautomer variants of an input molecule
- match_engine:        substructure matches and their cut bonds
- fragment_extractor:  peripheral fragments, cleaving and rendering
- fingerprints:        Morgan fingerprints of fragment content
"""
