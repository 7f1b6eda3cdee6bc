"""
YAML fixture import: discovery, parsing, column alignment, the per-process
parse cache, concurrent orchestration and the transactional loader.
"""
