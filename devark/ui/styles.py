"""CSS styles for the devark dashboard."""

APP_CSS = """
Screen {
    layout: horizontal;
}

#left-container {
    width: 45%;
    height: 100%;
}

#session-container {
    height: 1fr;
    border: solid $primary;
}

#session-list {
    height: 1fr;
}

#right-container {
    width: 55%;
    height: 100%;
}

#copilot-container {
    height: 60%;
    border: solid $secondary;
    padding: 0 1;
}

#coaching-container {
    height: 40%;
    border: solid $warning;
    padding: 0 1;
}

.panel-header {
    height: auto;
    background: $surface;
    padding: 0 1;
    text-style: bold;
}

#session-header {
    color: $primary;
}

#coaching-header {
    color: $warning;
}

#status-bar {
    height: 1;
    padding: 0 1;
    background: $surface;
}

#copilot-panel, #coaching-panel {
    height: 1fr;
    overflow-y: auto;
    scrollbar-gutter: stable;
}

#copilot-panel:focus {
    border: solid $success;
}

SessionItem {
    height: 1;
    padding: 0 1;
}

SessionItem:hover {
    background: $surface-lighten-1;
}

ListView:focus > ListItem.-active {
    background: $primary-darken-1;
}

ListView.-has-focus > ListItem.-active {
    background: $primary;
}

#coaching-container.dimmed {
    opacity: 0.5;
}

Footer {
    background: $surface;
}
"""
