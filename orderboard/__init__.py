# Order board: canonical order state, status columns, and sync with the order service
#
# Components:
#   schema.py        - Data model (Order, Status, HistoryEntry, KanbanColumn, BoardState)
#   mapper.py        - Remote payload → Order normalization
#   history.py       - Append-only history / comment helpers
#   reducer.py       - Actions and the pure board reducer (column partitioning)
#   remote.py        - Order service HTTP client
#   notifications.py - Success / error toasts for the UI layer
#   sync.py          - Sync controller (load, optimistic updates, reload-on-failure)
#   config.py        - YAML configuration
#   board_server.py  - Flask JSON API over the controller
