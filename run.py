"""Project root entry point for launching the web interface."""

from __future__ import annotations

import os


def main():
    from mdtranslator.web import create_app

    app = create_app()
    port = int(os.environ.get("MDTRANSLATOR_PORT", 5500))
    # The reloader would start a second background event loop process
    app.run(host="0.0.0.0", port=port, debug=True, use_reloader=False)


if __name__ == "__main__":
    main()
