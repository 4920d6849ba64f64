# This module holds everything the core remembers

#  +---------------------+
# |      Memory         |   (Persistent, large, external)
# |---------------------|
# | Embedded memories   |
# | Cached generations  |
# | Buffered messages   |
# +---------------------+

# +---------------------+
# |      State          |   (Current, per user, lock-guarded)
# |---------------------|
# | Committed state     |
# | Candidate + streak  |
# | Last score          |
# | Commit sequence     |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |        Action routing        |
# |------------------------------|
# | Current state (read-only)    |
# | Relevant memory for prompts  |
# | Cached result, if any        |
# +------------------------------+
