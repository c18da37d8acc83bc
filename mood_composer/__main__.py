"""Entry point wrapper for ``python -m mood_composer``.

When the package is executed as a module the code here simply forwards
execution to :func:`mood_composer.main` so ``python -m mood_composer`` and
the installed ``mood-composer`` console script behave identically.

Example
-------
The following invocation composes a melancholic piece and saves it as MIDI::

    python -m mood_composer --mood Melancholic --key "A minor" --midi song.mid
"""

from . import main

if __name__ == "__main__":
    main()
