"""Session-side engine: registry, content resolver, overlay merge, navigation.

  diagnostics  sink for content that degraded instead of failing
  registry     room id → room working copy (base rooms + merged overlays)
  loader       normalize room documents, resolve dialog trees
  overlay      merge generator overlays, derive player-visible rooms
  state        explicit per-session state container
  navigation   move resolution and prefetch dispatch
  tasks        fire-and-forget work queue
  log          event log entry builders and tag filters
  session      wiring of state, save backend and generator
"""
