# State = All information required to continue or audit a workflow run at a particular moment in time.

# **It's "the NOW" for the run, including:

# Iteration count and elapsed time against the run's budgets

# Per-step attempts, completion flags and result text

# Which tools have been called, what their outputs were

# The message history and its estimated token count

# Terminal status once the run has ended
