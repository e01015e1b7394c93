# Einstiegspunkt der Anwendung.
# Erzeugt die QApplication und zeigt das Hauptfenster an.

import logging
import sys

from PyQt6.QtWidgets import QApplication

from ts2mp4.app import create_app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = QApplication(sys.argv)
    app.setApplicationName("TS2MP4")
    app.setOrganizationName("ts2mp4")

    window = create_app()
    if window is None:
        sys.exit(1)

    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
