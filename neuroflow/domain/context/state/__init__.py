# State = The committed cognitive label of each active user, plus what is needed to decide the next one.

# Candidate state and how many consecutive samples proposed it

# Last load score

# Per-user commit sequence (orders transitions)

# Time of the last sample (drives staleness and eviction)
