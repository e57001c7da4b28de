from voxelworld.cli import main

main()
