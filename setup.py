#!/usr/bin/env python

# Copyright (c) Chatyuk developers.
# See LICENSE for details.

from setuptools import setup

# Make sure 'twisted' doesn't appear in top_level.txt

try:
    from setuptools.command import egg_info
    egg_info.write_toplevel_names
except (ImportError, AttributeError):
    pass
else:
    def _top_level_package(name):
        return name.split('.', 1)[0]

    def _hacked_write_toplevel_names(cmd, basename, filename):
        pkgs = dict.fromkeys(
            [_top_level_package(k)
                for k in cmd.distribution.iter_distribution_names()
                if _top_level_package(k) != "twisted"
            ]
        )
        cmd.write_file("top-level names", filename, '\n'.join(pkgs) + '\n')

    egg_info.write_toplevel_names = _hacked_write_toplevel_names

with open('README.rst', 'r') as f:
    long_description = f.read()

setup(name='chatyuk',
      description='XMPP multi-user chat client over BOSH',
      long_description = long_description,
      author='Chatyuk developers',
      url='https://github.com/chatyuk/chatyuk',
      license='MIT',
      platforms='any',
      classifiers=[
          'Programming Language :: Python :: 3',
          'Framework :: Twisted',
          'Topic :: Communications :: Chat',
      ],
      packages=[
          'chatyuk',
          'chatyuk.test',
          'twisted.plugins',
      ],
      package_data={'twisted.plugins': ['twisted/plugins/chatyuk_client.py']},
      zip_safe=False,
      setup_requires=[
          'incremental>=16.9.0',
      ],
      use_incremental=True,
      install_requires=[
          'constantly>=15.1.0',
          'incremental>=16.9.0',
          'python-dateutil',
          'Twisted[tls]>=19.10.0',
          'zope.interface',
      ],
      extras_require={
          "dev": [
              "pyflakes",
              "coverage",
          ],
      },
)
