"""
__main__.py

This file adds support for running potdwall as a python module instead of invoking the "potdwall"
command line entrypoint. The scheduled runs installed by 'potdwall install' use this form, so they
keep working with whichever interpreter potdwall was installed into.
"""


from potdwall.cli import main


if __name__ == "__main__":
    main()
