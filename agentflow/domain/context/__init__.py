 # This module handles Context engineering for workflow runs

# +---------------------+
# |      Memory         |   (Per run, bounded by a token budget)
# |---------------------|
# | System + seed user  |
# | Step exchanges      |
# | Tool results        |
# +---------------------+

# +---------------------+
# |      State          |   (Current, in-process, workflow-focused)
# |---------------------|
# | Iteration           |
# | Step attempts       |
# | Completed steps     |
# | Memory metrics      |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |           Context            |   (Assembled for each step)
# |------------------------------|
# | Step objective and type      |
# | Previous step results        |
# | Shared workflow context      |
# | Stored tool results          |
# +------------------------------+
#         |
#         v
#   [Generation provider / tool call]
