"""python -m shinemap"""

from shinemap.main import main

if __name__ == "__main__":
    main()
