"""Run the cluster-mirror command line tool."""

from cluster_mirror.tool.cluster_mirror import main

if __name__ == "__main__":
    main()
