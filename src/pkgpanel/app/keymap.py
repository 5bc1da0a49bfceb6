"""Key mappings for the control panel."""

from textual.app import App


def bind_keys(app: App) -> None:
    """Bind key mappings for the control panel.

    Args:
        app (App): The PanelApp instance.
    """
    app.bind("q", "quit", description="Quit")
    app.bind("r", "app.check_all", description="Check all")
    app.bind("R", "app.force_check_all", description="Force check")
    app.bind("space", "app.toggle_selected", description="Install/Uninstall")
    app.bind("s", "app.stop_selected", description="Stop")
    app.bind("enter", "app.refresh_selected", description="Refresh")
    app.bind("m", "app.switch_manager", description="Switch manager")
    app.bind("c", "app.toggle_chocolatey", description="Install/Remove Chocolatey")
    app.bind("l", "focus('logs')", show=False)
    app.bind("t", "focus('table')", show=False)
