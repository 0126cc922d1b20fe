"""Dynamic branching.

A dynamic target fans out over the values of its dependencies once those
values exist. The modules here name the resulting sub-targets from content
digests, register them with the running session, map each sub-target back
to the slices it consumes, and assemble the parent value (with its trace)
once every sub-target is done.
"""
