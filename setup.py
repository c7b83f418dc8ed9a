"""
OwOS Emulator Setup
"""

from setuptools import setup, find_packages

setup(
    name='owos-emulator',
    version='0.1.0',
    description='OwOS 6502 Virtual Machine Bus and Peripheral Emulator',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    author='OwOS Emulator Team',
    python_requires='>=3.8',
    packages=find_packages(include=['owos_emulator', 'owos_emulator.*']),
    install_requires=[
        'rich',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'owos-emulator=owos_emulator.__main__:main',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Education',
        'Topic :: System :: Emulators',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
)
