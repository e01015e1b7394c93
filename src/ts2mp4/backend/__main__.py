# Einstiegspunkt des Worker-Prozesses: python -m ts2mp4.backend

from ts2mp4.backend.engine import main

if __name__ == "__main__":
    main()
